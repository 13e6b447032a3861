"""
Workflow Models - JSON structures for workflow graphs and run results.

Field names are snake_case in Python and camelCase on the wire; every model
accepts either form and serializes with aliases via `to_dict()`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flowys.node_sdk.basenode import ErrorCategory, NodeType


class NodeStatus(str, Enum):
    """Status of a node during a run."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.SUCCESS, NodeStatus.FAILED, NodeStatus.SKIPPED)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dict using camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


# ==============================================================================
# Graph definition
# ==============================================================================

class WorkflowNode(_WireModel):
    """
    A node in a workflow graph.

    Also accepts the editor's shape, where label and config are nested
    under `data`: {"id", "type", "data": {"label", "config"}}.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, description="Node ID (unique within graph)")
    type: NodeType = Field(..., description="Node type")
    config: Dict[str, Any] = Field(default_factory=dict, description="Type-specific config")
    label: str = Field("", description="Human-readable name")

    @model_validator(mode="before")
    @classmethod
    def _flatten_editor_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            nested = data["data"]
            data = {k: v for k, v in data.items() if k != "data"}
            data.setdefault("config", nested.get("config") or {})
            data.setdefault("label", nested.get("label") or "")
        if isinstance(data, dict) and not data.get("label"):
            data = {**data, "label": data.get("id", "")}
        return data


class WorkflowEdge(_WireModel):
    """
    A directed data dependency: `target` waits for `source`.

    `source_handle` names the source's output port (a condition node's
    "true"/"false" branch); it also keys the source's output in the
    target's merged input.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str = Field("", description="Edge ID")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            data = {**data, "id": f"{data.get('source')}->{data.get('target')}"}
        return data


class WorkflowDefinition(_WireModel):
    """A named workflow: nodes plus edges."""

    name: str = Field("Unnamed Workflow", description="Workflow name")
    description: Optional[str] = Field(None, description="Workflow description")
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


# ==============================================================================
# Run results
# ==============================================================================

class ExecutionLogEntry(_WireModel):
    """
    One node's record within a run.

    Created as pending; the engine replaces it with a new entry on each
    transition and never changes an entry once it is terminal.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    node_id: str = Field(..., alias="nodeId")
    node_name: str = Field(..., alias="nodeName")
    node_type: NodeType = Field(..., alias="nodeType")
    status: NodeStatus = Field(NodeStatus.PENDING)
    input: Any = Field(None, description="Input snapshot at start")
    output: Any = Field(None, description="Output snapshot at success")
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = Field(None, alias="errorCategory")
    warnings: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    duration_ms: Optional[float] = Field(None, alias="durationMs")

    def evolve(self, **changes: Any) -> "ExecutionLogEntry":
        """Copy of this entry with `changes` applied."""
        return self.model_copy(update=changes)


class ErrorAnalysis(_WireModel):
    """Structured diagnostic for the first failing node of a run."""

    category: ErrorCategory
    summary: str
    failed_node: Optional[str] = Field(None, alias="failedNode")
    failed_node_type: Optional[NodeType] = Field(None, alias="failedNodeType")
    possible_causes: List[str] = Field(default_factory=list, alias="possibleCauses")
    suggested_fixes: List[str] = Field(default_factory=list, alias="suggestedFixes")
    affected_nodes: List[str] = Field(default_factory=list, alias="affectedNodes")


class ExecutionResult(_WireModel):
    """Aggregate result of one run."""

    run_id: str = Field(..., alias="runId")
    success: bool
    output: Any = None
    logs: List[ExecutionLogEntry] = Field(default_factory=list)
    error: Optional[str] = None
    error_analysis: Optional[ErrorAnalysis] = Field(None, alias="errorAnalysis")
    duration_ms: float = Field(0, alias="durationMs")
    credits_used: int = Field(0, alias="creditsUsed")

    def get_log(self, node_id: str) -> Optional[ExecutionLogEntry]:
        """Get a node's log entry by ID."""
        for entry in self.logs:
            if entry.node_id == node_id:
                return entry
        return None


def parse_nodes(data: List[Any]) -> List[WorkflowNode]:
    """Parse raw node dicts (or pass through WorkflowNode instances)."""
    return [
        item if isinstance(item, WorkflowNode) else WorkflowNode.model_validate(item)
        for item in data
    ]


def parse_edges(data: List[Any]) -> List[WorkflowEdge]:
    """Parse raw edge dicts (or pass through WorkflowEdge instances)."""
    return [
        item if isinstance(item, WorkflowEdge) else WorkflowEdge.model_validate(item)
        for item in data
    ]


__all__ = [
    "NodeType",
    "NodeStatus",
    "ErrorCategory",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowDefinition",
    "ExecutionLogEntry",
    "ErrorAnalysis",
    "ExecutionResult",
    "parse_nodes",
    "parse_edges",
]
