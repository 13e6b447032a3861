"""Node catalog and single-node test routes."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from flowys.node_sdk import NodeType
from flowys.workflow_runtime import WorkflowExecutor, describe_node_types

from flowys.api.dependencies import get_executor

router = APIRouter()


class TestNodeRequest(BaseModel):
    """Request model for running one node in isolation."""

    type: NodeType = Field(..., description="Node type")
    config: dict[str, Any] = Field(default_factory=dict, description="Node config")
    input: Any = Field(default_factory=dict, description="Input delivered to the node")


@router.get("/v1/nodes")
def list_node_types() -> dict[str, Any]:
    """
    List node types.

    Returns:
        Catalog with display name, credit cost and config schema per type
    """
    return {"nodes": describe_node_types()}


@router.post("/v1/nodes/test")
def test_node(
    request: TestNodeRequest,
    executor: WorkflowExecutor = Depends(get_executor),
) -> dict[str, Any]:
    """
    Run one node outside any workflow.

    Returns:
        {"success", "output", "error", "log"}
    """
    entry = executor.test_node(request.type, request.config, request.input)
    return {
        "success": entry.status.value == "success",
        "output": entry.output,
        "error": entry.error,
        "log": entry.to_dict(),
    }
