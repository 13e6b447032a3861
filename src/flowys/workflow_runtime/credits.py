"""
Credit Meter - cost of a run by node type.

Pure functions only. Checking a balance before a run and deducting the
cost afterwards belong to the caller.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from flowys.node_sdk.basenode import NodeType

from .models import ExecutionLogEntry, NodeStatus


CREDIT_COSTS: Mapping[NodeType, int] = {
    NodeType.INPUT: 0,
    NodeType.OUTPUT: 0,
    NodeType.LOGIC: 1,
    NodeType.API: 1,
    NodeType.WEBHOOK: 1,
    NodeType.INTEGRATION: 1,
    NodeType.AI: 10,
}

if set(CREDIT_COSTS) != set(NodeType):
    raise RuntimeError(
        f"Node types without a credit cost: {sorted(t.value for t in set(NodeType) - set(CREDIT_COSTS))}"
    )

# Statuses that mean the node's executor actually ran
_CHARGED_STATUSES = frozenset({NodeStatus.SUCCESS, NodeStatus.FAILED})


def node_cost(node_type: NodeType | str) -> int:
    """Fixed cost of running one node of `node_type`."""
    return CREDIT_COSTS[NodeType(node_type)]


def calculate_run_cost(entries: Iterable[ExecutionLogEntry]) -> int:
    """
    Total cost of a run from its log entries.

    Nodes that succeeded or failed are charged; skipped and pending nodes
    cost nothing.
    """
    return sum(
        CREDIT_COSTS[entry.node_type]
        for entry in entries
        if entry.status in _CHARGED_STATUSES
    )


def estimate_workflow_cost(nodes: Iterable[Any]) -> int:
    """
    Upper bound on a run's cost: every node charged once.

    Accepts WorkflowNode instances or raw node dicts.
    """
    total = 0
    for node in nodes:
        node_type = node["type"] if isinstance(node, Mapping) else node.type
        total += node_cost(node_type)
    return total


__all__ = [
    "CREDIT_COSTS",
    "node_cost",
    "calculate_run_cost",
    "estimate_workflow_cost",
]
