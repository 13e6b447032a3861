"""
Error Analysis - diagnostics for the first failing node of a run.

Classification comes from the failing error's category. Possible causes and
suggested fixes are chosen by category, by keywords in the error message,
and by node type.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

from flowys.node_sdk.basenode import ErrorCategory, NodeType

from .graph import ExecutionGraph
from .models import ErrorAnalysis, WorkflowNode


# (keyword pattern, cause, fixes)
_KEYWORD_RULES: List[Tuple[re.Pattern[str], str, Tuple[str, ...]]] = [
    (
        re.compile(r"\b(array|list)\b"),
        "The previous node didn't return data in the expected format (a list)",
        (
            "Check the output of the previous node to see what data it produced",
            "If using an API node, verify the API returns a list of items",
        ),
    ),
    (
        re.compile(r"\b(undefined|null|none|missing|required)\b"),
        "Required data is missing from the input",
        (
            "Make sure all required fields are passed from previous nodes",
            "Check that field names match exactly, including capitalization",
        ),
    ),
    (
        re.compile(r"\b(config|configuration|setting|mapping)s?\b"),
        "The node is not properly configured",
        (
            "Review and update the node's settings",
            "Make sure all required fields are filled in",
        ),
    ),
    (
        re.compile(r"\b(condition|expression)\b"),
        "The filter or condition expression may be incorrect",
        (
            "Check the condition syntax, for example 'item.score > 80'",
            "Make sure the field names in the condition exist in the data",
        ),
    ),
    (
        re.compile(r"\b(template|placeholder)\b"),
        "A {{...}} placeholder in the node's settings is malformed",
        ("Placeholders look like {{input.field}} or {{nodeId.field}}",),
    ),
]

_CATEGORY_RULES = {
    ErrorCategory.NETWORK: (
        "Unable to reach an external service, or it returned an error status",
        (
            "Verify the URL is correct and the service is running",
            "Check whether any API keys are required and properly configured",
        ),
    ),
    ErrorCategory.TIMEOUT: (
        "The operation did not finish within its time limit",
        (
            "Increase the node's timeout, or the run timeout",
            "Check whether the external service is slow or overloaded",
        ),
    ),
    ErrorCategory.SCHEMA_MISMATCH: (
        "The AI response wasn't valid JSON matching the output schema",
        (
            "Simplify your output schema to reduce complexity",
            "Increase the max tokens setting to prevent cut-off responses",
            "Add clearer instructions in your prompt about the expected format",
        ),
    ),
    ErrorCategory.VALIDATION: (
        "The node's configuration or input failed validation",
        ("Review the node's settings against the errors reported",),
    ),
}

_TYPE_RULES = {
    NodeType.API: (
        "The API request may have failed or returned unexpected data",
        (
            "Test the API endpoint separately to verify it works",
            "Check the API node's URL, method, and headers",
        ),
    ),
    NodeType.AI: (
        "The AI model may have encountered an issue processing your request",
        (
            "Review your prompt template and make it clearer",
            "Check that placeholders like {{input.text}} match available inputs",
        ),
    ),
    NodeType.LOGIC: (
        "The data transformation or filtering logic encountered an issue",
        (
            "Verify the input data structure matches what the operation expects",
            "For filter operations, ensure the condition references valid fields",
        ),
    ),
    NodeType.WEBHOOK: (
        "The webhook target rejected the request or could not be reached",
        ("Verify the webhook URL and any signing secret",),
    ),
    NodeType.INTEGRATION: (
        "The integration action failed",
        ("Check that the connection is still authorized and the action exists",),
    ),
    NodeType.INPUT: (
        "The workflow input did not match the declared fields",
        ("Provide every required field with a value of the declared type",),
    ),
}

_DEFAULT_FIXES = (
    "Review the node configuration",
    "Check the output of previous nodes for unexpected data",
    "Try running the workflow again - some errors are temporary",
)


def _add(target: List[str], items: Any) -> None:
    for item in items:
        if item not in target:
            target.append(item)


def _is_empty(inputs: Any) -> bool:
    return inputs is None or (isinstance(inputs, (dict, list, str)) and len(inputs) == 0)


def analyze_error(
    node: WorkflowNode,
    message: str,
    category: ErrorCategory,
    graph: Optional[ExecutionGraph] = None,
    inputs: Any = None,
) -> ErrorAnalysis:
    """
    Build an ErrorAnalysis for a failed node.

    Args:
        node: The failed node
        message: Its error message
        category: Category of the error that failed it
        graph: The run's graph, used to list affected downstream nodes
        inputs: The input the node received

    Returns:
        ErrorAnalysis
    """
    causes: List[str] = []
    fixes: List[str] = []
    lowered = message.lower()

    if category in _CATEGORY_RULES:
        cause, category_fixes = _CATEGORY_RULES[category]
        causes.append(cause)
        _add(fixes, category_fixes)

    for pattern, cause, keyword_fixes in _KEYWORD_RULES:
        if pattern.search(lowered):
            _add(causes, [cause])
            _add(fixes, keyword_fixes)

    if node.type in _TYPE_RULES:
        cause, type_fixes = _TYPE_RULES[node.type]
        if not causes:
            causes.append(cause)
        _add(fixes, type_fixes)

    if node.type != NodeType.INPUT and _is_empty(inputs):
        causes.insert(0, "This node received no input data from previous nodes")
        fixes.insert(0, "Make sure this node is connected to a previous node that outputs data")

    if not causes:
        causes.append("An unexpected error occurred during execution")
    if not fixes:
        fixes.extend(_DEFAULT_FIXES)

    affected: List[str] = []
    if graph is not None and node.id in graph:
        affected = [graph.get_node(n).label for n in graph.descendants(node.id)]

    summary = f'The "{node.label}" node ({node.type.value}) failed to execute.'
    if affected:
        summary += f" This also prevented {len(affected)} other node(s) from running."

    return ErrorAnalysis(
        category=category,
        summary=summary,
        failed_node=node.label,
        failed_node_type=node.type,
        possible_causes=causes,
        suggested_fixes=fixes,
        affected_nodes=affected,
    )


def analyze_structural_error(message: str) -> ErrorAnalysis:
    """ErrorAnalysis for a graph that could not be run at all."""
    causes = ["The workflow graph is invalid, so no node was run"]
    fixes: List[str] = []
    lowered = message.lower()
    if "cycle" in lowered:
        causes.append("Connections form a loop; a node cannot depend on itself")
        fixes.append("Remove one connection from the loop")
    if "output node" in lowered:
        causes.append("The workflow has no output node")
        fixes.append("Add an output node and connect it to the final step")
    if "unknown node" in lowered:
        causes.append("A connection points at a node that does not exist")
        fixes.append("Delete the dangling connection")
    if not fixes:
        fixes.append("Check the workflow's nodes and connections")
    return ErrorAnalysis(
        category=ErrorCategory.VALIDATION,
        summary=f"The workflow could not be run: {message}",
        possible_causes=causes,
        suggested_fixes=fixes,
    )
