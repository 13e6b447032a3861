"""
Workflow Runtime - concurrent execution of workflow graphs.

Components:
- models: Workflow, log entry and result models
- graph: Validated DAG with topological order
- templates: {{...}} placeholder resolution
- executor: Scheduler running nodes as their dependencies complete
- events: Ordered execution log and live events
- credits: Run cost by node type
- analysis: Diagnostics for failed runs
- io: Workflow import/export
"""

from .analysis import analyze_error, analyze_structural_error
from .credits import CREDIT_COSTS, calculate_run_cost, estimate_workflow_cost, node_cost
from .errors import StructuralError, WorkflowError, WorkflowImportError
from .events import ExecutionEvent, ExecutionLog, ProgressCallback
from .executor import WorkflowExecutor, describe_node_types
from .graph import ExecutionGraph, try_build
from .io import (
    WorkflowExport,
    create_workflow_export,
    load_workflow,
    parse_workflow_import,
    remap_workflow_ids,
    workflow_to_json,
)
from .models import (
    ErrorAnalysis,
    ErrorCategory,
    ExecutionLogEntry,
    ExecutionResult,
    NodeStatus,
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)
from .store import NodeOutputStore, RunContext
from .templates import TemplateScope, resolve, resolve_value

__all__ = [
    "WorkflowExecutor",
    "describe_node_types",
    "ExecutionGraph",
    "try_build",
    "ExecutionLog",
    "ExecutionEvent",
    "ProgressCallback",
    "NodeOutputStore",
    "RunContext",
    "TemplateScope",
    "resolve",
    "resolve_value",
    "CREDIT_COSTS",
    "node_cost",
    "calculate_run_cost",
    "estimate_workflow_cost",
    "analyze_error",
    "analyze_structural_error",
    "WorkflowError",
    "StructuralError",
    "WorkflowImportError",
    "WorkflowExport",
    "create_workflow_export",
    "workflow_to_json",
    "parse_workflow_import",
    "load_workflow",
    "remap_workflow_ids",
    "ErrorAnalysis",
    "ErrorCategory",
    "ExecutionLogEntry",
    "ExecutionResult",
    "NodeStatus",
    "NodeType",
    "WorkflowDefinition",
    "WorkflowEdge",
    "WorkflowNode",
]
