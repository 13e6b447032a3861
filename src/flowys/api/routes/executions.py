"""Workflow execution routes."""
from typing import Any, Iterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from flowys.observability import get_logger, with_run_context
from flowys.workflow_runtime import WorkflowExecutor

from flowys.api.dependencies import get_executor

logger = get_logger(__name__)
router = APIRouter()


class ExecuteWorkflowRequest(BaseModel):
    """Request model for running a workflow."""

    name: str | None = Field(default=None, description="Workflow name, for logs")
    nodes: list[dict[str, Any]] = Field(..., description="Workflow nodes")
    edges: list[dict[str, Any]] = Field(default_factory=list, description="Workflow edges")
    input: Any = Field(default_factory=dict, description="Global input")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Abort the run after this many seconds",
    )


@router.post("/v1/executions")
def execute_workflow(
    request: ExecuteWorkflowRequest,
    executor: WorkflowExecutor = Depends(get_executor),
) -> dict[str, Any]:
    """
    Run a workflow to completion.

    Args:
        request: Workflow graph and input

    Returns:
        ExecutionResult as JSON. Failed runs are reported in the body
        with success=false, not as HTTP errors.
    """
    result = executor.execute(
        request.nodes,
        request.edges,
        input=request.input,
        timeout=request.timeout,
        workflow_name=request.name,
    )
    logger.info(
        "Execution finished via API",
        extra=with_run_context(run_id=result.run_id, workflow_name=request.name, success=result.success),
    )
    return result.to_dict()


@router.post("/v1/executions/stream")
def stream_workflow(
    request: ExecuteWorkflowRequest,
    executor: WorkflowExecutor = Depends(get_executor),
) -> StreamingResponse:
    """
    Run a workflow, streaming Server-Sent Events.

    Events: `started`, one `node-update` per finished node, `completed`.
    """
    def events() -> Iterator[str]:
        for event in executor.stream(
            request.nodes,
            request.edges,
            input=request.input,
            timeout=request.timeout,
            workflow_name=request.name,
        ):
            yield event.to_sse()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
