"""Run-level errors raised by the workflow runtime."""

from __future__ import annotations

from typing import List, Optional


class WorkflowError(Exception):
    """Base exception for workflow runtime errors."""

    pass


class StructuralError(WorkflowError):
    """
    The graph itself is invalid: empty, duplicate or unknown node IDs,
    a cycle, or no output node. No node of such a graph is ever run.
    """

    def __init__(self, message: str, node_ids: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.node_ids = node_ids or []


class WorkflowImportError(WorkflowError):
    """An exported workflow document could not be read."""

    pass
