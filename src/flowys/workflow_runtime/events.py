"""
Execution Log - ordered record of node lifecycle transitions.

Only the run's coordinator writes to an ExecutionLog; node tasks hand their
terminal entries to the coordinator over a queue. The order in which the
coordinator records terminal entries is the single source of truth for
both the live progress stream and the final logs.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from flowys.observability import get_logger

from .models import ExecutionLogEntry, NodeStatus, WorkflowNode

logger = get_logger(__name__)

ProgressCallback = Callable[[ExecutionLogEntry, List[ExecutionLogEntry]], None]


class ExecutionLog:
    """
    Per-run log with one entry per node.

    Every node starts pending and reaches exactly one terminal status.
    `record()` notifies the progress callback once per terminal transition.
    """

    def __init__(
        self,
        nodes: Iterable[WorkflowNode],
        on_progress: Optional[ProgressCallback] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self._current: Dict[str, ExecutionLogEntry] = {
            node.id: ExecutionLogEntry(
                node_id=node.id,
                node_name=node.label,
                node_type=node.type,
                status=NodeStatus.PENDING,
            )
            for node in nodes
        }
        self._completed: List[ExecutionLogEntry] = []
        self._on_progress = on_progress
        self._run_id = run_id

    def get(self, node_id: str) -> ExecutionLogEntry:
        return self._current[node_id]

    def status(self, node_id: str) -> NodeStatus:
        return self._current[node_id].status

    def mark_running(self, node_id: str, **changes: Any) -> ExecutionLogEntry:
        """Move a pending entry to running."""
        entry = self._current[node_id]
        if entry.status != NodeStatus.PENDING:
            raise RuntimeError(f"Node '{node_id}' is {entry.status.value}, not pending")
        entry = entry.evolve(status=NodeStatus.RUNNING, **changes)
        self._current[node_id] = entry
        return entry

    def record(self, entry: ExecutionLogEntry) -> None:
        """
        Record a terminal entry and notify the progress callback.

        Raises:
            RuntimeError: If the entry is not terminal, or the node already
                reached a terminal status
        """
        if not entry.status.is_terminal:
            raise RuntimeError(f"Cannot record non-terminal status {entry.status.value}")
        previous = self._current[entry.node_id]
        if previous.status.is_terminal:
            raise RuntimeError(
                f"Node '{entry.node_id}' already {previous.status.value}"
            )
        self._current[entry.node_id] = entry
        self._completed.append(entry)
        self._notify(entry)

    def _notify(self, entry: ExecutionLogEntry) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(entry, list(self._completed))
        except Exception:
            logger.error(
                "Progress callback failed",
                extra={"run_id": self._run_id, "node_id": entry.node_id},
                exc_info=True,
            )

    def unfinished(self) -> List[str]:
        """Node IDs still pending or running."""
        return [
            node_id for node_id, entry in self._current.items()
            if not entry.status.is_terminal
        ]

    def entries(self) -> List[ExecutionLogEntry]:
        """Terminal entries in completion order."""
        return list(self._completed)


class ExecutionEvent(BaseModel):
    """One message of a live run stream."""

    event: str = Field(..., description="started | node-update | completed")
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Server-Sent Events wire format."""
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"

    @classmethod
    def started(cls, run_id: str, node_ids: List[str]) -> "ExecutionEvent":
        return cls(event="started", data={"runId": run_id, "nodes": node_ids})

    @classmethod
    def node_update(
        cls,
        entry: ExecutionLogEntry,
        entries: List[ExecutionLogEntry],
    ) -> "ExecutionEvent":
        return cls(
            event="node-update",
            data={
                "log": entry.to_dict(),
                "logs": [e.to_dict() for e in entries],
            },
        )

    @classmethod
    def completed(cls, result: Any) -> "ExecutionEvent":
        return cls(event="completed", data=result.to_dict())
