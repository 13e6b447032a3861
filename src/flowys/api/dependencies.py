"""Shared route dependencies."""
from flowys.workflow_runtime import WorkflowExecutor

_executor: WorkflowExecutor | None = None


def get_executor() -> WorkflowExecutor:
    """Get the process-wide executor (created on first use)."""
    global _executor
    if _executor is None:
        _executor = WorkflowExecutor()
    return _executor


def reset_executor() -> None:
    """Drop the cached executor (for testing)."""
    global _executor
    _executor = None
