"""
Workflow Executor - concurrent DAG execution engine.

Runs every node of a validated graph as its own task on a thread pool,
submitted the moment all of the node's dependencies have succeeded. Node
tasks never raise: each one turns its outcome into a terminal log entry and
posts it onto a completion queue. A single coordinator drains that queue,
records entries in completion order, notifies progress observers and
dispatches whatever became ready.

Failure policy: a failed node skips its transitive dependents only;
independent branches keep running.
"""

from __future__ import annotations

import queue
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from flowys.config import Settings, get_settings
from flowys.integrations.registry import IntegrationRegistry
from flowys.node_sdk.basenode import (
    ErrorCategory,
    NodeContext,
    NodeHandler,
    NodeOperationError,
    NodeType,
    categorize_error,
)
from flowys.node_sdk.http import HttpClient
from flowys.nodes import NODE_HANDLERS, parse_node_config
from flowys.observability import get_logger, with_run_context
from flowys.providers import default_providers
from flowys.providers.base import LLMProvider

from .analysis import analyze_error, analyze_structural_error
from .credits import calculate_run_cost, node_cost
from .errors import StructuralError
from .events import ExecutionEvent, ExecutionLog, ProgressCallback
from .graph import ExecutionGraph
from .models import (
    ExecutionLogEntry,
    ExecutionResult,
    NodeStatus,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)
from .store import RunContext
from .templates import TemplateScope, resolve_value


logger = get_logger(__name__)

# Coordinator wake-up interval while waiting for completions
POLL_INTERVAL_S = 0.05

# Source handles that select a condition node's branch
BRANCH_HANDLES = ("true", "false")

NO_OUTPUT_ERROR = "No output node produced output"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def describe_node_types() -> List[Dict[str, Any]]:
    """Catalog of node types with their credit cost and config schema."""
    return [
        {**handler.get_definition(), "credits": node_cost(node_type)}
        for node_type, handler in NODE_HANDLERS.items()
    ]


class WorkflowExecutor:
    """
    Concurrent workflow executor.

    Holds only collaborators (settings, LLM providers, integration
    registry, HTTP client factory); all run state lives in a per-run
    coordinator, so one executor may serve many runs at once.

    Usage:
        executor = WorkflowExecutor()
        result = executor.execute(nodes, edges, input={"items": [1, 2, 3]})
        if result.success:
            print(result.output)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        integration_registry: Optional[IntegrationRegistry] = None,
        providers: Optional[Mapping[str, LLMProvider]] = None,
        http_client_factory: Optional[Callable[..., HttpClient]] = None,
        handlers: Optional[Mapping[NodeType, NodeHandler]] = None,
    ):
        """
        Initialize executor.

        Args:
            settings: Engine settings (defaults to get_settings())
            integration_registry: Registry used by integration nodes
            providers: LLM providers by name (defaults to the built-ins)
            http_client_factory: Builds the HttpClient used by api and
                webhook nodes
            handlers: Override of the node type dispatch table
        """
        self._settings = settings or get_settings()
        self._integrations = integration_registry
        self._providers: Dict[str, LLMProvider] = dict(
            providers if providers is not None else default_providers(self._settings)
        )
        self._http_factory = http_client_factory
        self._handlers = dict(handlers or NODE_HANDLERS)

    @property
    def settings(self) -> Settings:
        return self._settings

    # ==== Public API ====

    def execute(
        self,
        nodes: Sequence[Any],
        edges: Sequence[Any],
        input: Any = None,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        run_id: Optional[str] = None,
        workflow_name: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Execute a workflow graph.

        Args:
            nodes: Node dicts or WorkflowNode instances
            edges: Edge dicts or WorkflowEdge instances
            input: Global input delivered to root nodes
            on_progress: Called with (entry, entries_so_far) once per
                terminal node transition
            timeout: Abort the run after this many seconds (defaults to
                settings.run_timeout_s)
            cancel_event: Setting it aborts the run
            run_id: Run ID (generated when omitted)
            workflow_name: Name used in log records

        Returns:
            ExecutionResult. Structural problems are reported in the result
            with empty logs; this method does not raise for them.
        """
        started = time.perf_counter()
        context = RunContext(input, run_id)
        extra = with_run_context(run_id=context.run_id, workflow_name=workflow_name)

        try:
            graph = ExecutionGraph.build(nodes, edges)
        except StructuralError as e:
            logger.warning(f"Workflow rejected: {e}", extra=extra)
            return ExecutionResult(
                run_id=context.run_id,
                success=False,
                error=str(e),
                error_analysis=analyze_structural_error(str(e)),
                duration_ms=_elapsed_ms(started),
            )

        logger.info(
            f"Run started: {len(graph)} nodes, {len(graph.edges)} edges",
            extra=extra,
        )
        logger.debug("Execution order", extra={**extra, "graph": graph.summary()})
        coordinator = _RunCoordinator(
            executor=self,
            graph=graph,
            context=context,
            on_progress=on_progress,
            timeout=timeout if timeout is not None else self._settings.run_timeout_s,
            cancel_event=cancel_event,
            log_extra=extra,
        )
        result = coordinator.run()
        result.duration_ms = _elapsed_ms(started)

        logger.info(
            f"Run finished: success={result.success} "
            f"credits={result.credits_used} duration_ms={result.duration_ms}",
            extra=extra,
        )
        return result

    def execute_definition(
        self,
        definition: WorkflowDefinition,
        input: Any = None,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Execute a WorkflowDefinition; keyword arguments as for execute()."""
        kwargs.setdefault("workflow_name", definition.name)
        return self.execute(definition.nodes, definition.edges, input, **kwargs)

    def stream(
        self,
        nodes: Sequence[Any],
        edges: Sequence[Any],
        input: Any = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        run_id: Optional[str] = None,
        workflow_name: Optional[str] = None,
    ) -> Iterator[ExecutionEvent]:
        """
        Execute a workflow, yielding live events.

        Yields a `started` event, one `node-update` per terminal node
        transition and a final `completed` event carrying the result.
        Closing the generator early cancels the run.
        """
        run_id = run_id or str(uuid.uuid4())
        cancel = cancel_event or threading.Event()
        events: "queue.Queue[Optional[ExecutionEvent]]" = queue.Queue()

        def on_progress(entry: ExecutionLogEntry, entries: List[ExecutionLogEntry]) -> None:
            events.put(ExecutionEvent.node_update(entry, entries))

        def run() -> None:
            try:
                result = self.execute(
                    nodes,
                    edges,
                    input=input,
                    on_progress=on_progress,
                    timeout=timeout,
                    cancel_event=cancel,
                    run_id=run_id,
                    workflow_name=workflow_name,
                )
                events.put(ExecutionEvent.completed(result))
            except Exception as e:
                logger.error(
                    f"Streamed run crashed: {e}",
                    extra=with_run_context(run_id=run_id),
                    exc_info=True,
                )
                events.put(ExecutionEvent(event="error", data={"error": str(e)}))
            finally:
                events.put(None)

        worker = threading.Thread(
            target=run,
            name=f"flowys-run-{run_id[:8]}",
            daemon=True,
        )

        yield ExecutionEvent.started(run_id, _node_ids(nodes))
        worker.start()
        try:
            while True:
                event = events.get()
                if event is None:
                    break
                yield event
        finally:
            cancel.set()

    def test_node(
        self,
        node_type: NodeType | str,
        config: Optional[Dict[str, Any]] = None,
        input: Any = None,
    ) -> ExecutionLogEntry:
        """
        Run one node outside any graph.

        The node receives `input` as both its global input and its payload.

        Returns:
            The node's terminal log entry
        """
        node = WorkflowNode(id="test", type=NodeType(node_type), config=config or {}, label="Test")
        context = RunContext(input)
        entry = ExecutionLogEntry(
            node_id=node.id,
            node_name=node.label,
            node_type=node.type,
            status=NodeStatus.RUNNING,
            input=context.global_input,
            started_at=_now(),
        )
        scope = TemplateScope(global_input=context.global_input, payload=context.global_input)
        return self.run_node(
            node,
            entry,
            upstream=context.global_input,
            payload=context.global_input,
            scope=scope,
            context=context,
            cancel_event=threading.Event(),
        )

    # ==== Node task ====

    def run_node(
        self,
        node: WorkflowNode,
        entry: ExecutionLogEntry,
        upstream: Any,
        payload: Any,
        scope: TemplateScope,
        context: RunContext,
        cancel_event: threading.Event,
    ) -> ExecutionLogEntry:
        """
        Execute one node and return its terminal entry. Never raises.

        Steps: resolve templates in the config, validate the resolved
        config, run the handler, store the output.
        """
        started = time.perf_counter()
        warnings: List[str] = []
        extra = with_run_context(
            run_id=context.run_id,
            node_id=node.id,
            node_type=node.type.value,
        )
        handler = self._handlers[node.type]

        try:
            resolved = {
                key: resolve_value(
                    value,
                    scope,
                    warnings,
                    preserve_types=key not in handler.text_fields,
                )
                for key, value in node.config.items()
            }
            config = parse_node_config(node.type, resolved)
            node_context = NodeContext(
                run_id=context.run_id,
                node_id=node.id,
                label=node.label,
                node_type=node.type,
                global_input=context.global_input,
                upstream=upstream,
                payload=payload,
                settings=self._settings,
                providers=self._providers,
                integrations=self._integrations,
                cancel_event=cancel_event,
                warnings=warnings,
                http_factory=self._http_factory,
            )
            output = handler.execute(config, node_context)
            context.outputs.put(node.id, output)

        except NodeOperationError as e:
            logger.warning(
                f'Node "{node.label}" failed ({e.category.value}): {e.message}',
                extra=extra,
            )
            return entry.evolve(
                status=NodeStatus.FAILED,
                error=e.message,
                error_category=e.category,
                warnings=list(warnings),
                completed_at=_now(),
                duration_ms=_elapsed_ms(started),
            )

        except Exception as e:
            logger.error(
                f'Node "{node.label}" raised unexpectedly: {e}',
                extra=extra,
                exc_info=True,
            )
            return entry.evolve(
                status=NodeStatus.FAILED,
                error=str(e) or type(e).__name__,
                error_category=categorize_error(e),
                warnings=list(warnings),
                completed_at=_now(),
                duration_ms=_elapsed_ms(started),
            )

        logger.debug(f'Node "{node.label}" succeeded', extra=extra)
        return entry.evolve(
            status=NodeStatus.SUCCESS,
            output=context.outputs.get(node.id),
            warnings=list(warnings),
            completed_at=_now(),
            duration_ms=_elapsed_ms(started),
        )


class _RunCoordinator:
    """
    Per-run scheduling state. Everything here is touched only by the
    thread that called run(); node tasks communicate through the
    completion queue.
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        graph: ExecutionGraph,
        context: RunContext,
        on_progress: Optional[ProgressCallback],
        timeout: Optional[float],
        cancel_event: Optional[threading.Event],
        log_extra: Dict[str, Any],
    ):
        self._executor = executor
        self._graph = graph
        self._context = context
        self._log = ExecutionLog(graph.nodes, on_progress, run_id=context.run_id)
        self._timeout = timeout
        self._external_cancel = cancel_event
        self._node_cancel = threading.Event()
        self._extra = log_extra
        self._completions: "queue.Queue[ExecutionLogEntry]" = queue.Queue()
        self._unmet: Dict[str, int] = {
            node_id: len(graph.dependencies(node_id)) for node_id in graph.topological_order
        }
        self._futures: Dict[str, Future] = {}
        self._abort_reason: Optional[str] = None
        self._pool = ThreadPoolExecutor(
            max_workers=executor.settings.max_concurrency,
            thread_name_prefix=f"flowys-node-{context.run_id[:8]}",
        )

    def run(self) -> ExecutionResult:
        deadline = time.monotonic() + self._timeout if self._timeout else None
        try:
            reason = self._check_abort(deadline)
            if reason is not None:
                self._abort(reason)
            else:
                for node_id in self._graph.roots():
                    self._dispatch(node_id)

            while self._log.unfinished():
                reason = self._check_abort(deadline)
                if reason is not None:
                    self._abort(reason)
                    break
                wait = POLL_INTERVAL_S
                if deadline is not None:
                    wait = max(0.0, min(wait, deadline - time.monotonic()))
                try:
                    entry = self._completions.get(timeout=wait)
                except queue.Empty:
                    continue
                self._complete(entry)
        finally:
            if self._abort_reason is None:
                self._pool.shutdown(wait=True)
            else:
                self._pool.shutdown(wait=False, cancel_futures=True)

        return self._build_result()

    # ==== Scheduling ====

    def _check_abort(self, deadline: Optional[float]) -> Optional[str]:
        if self._external_cancel is not None and self._external_cancel.is_set():
            return "Run was cancelled"
        if deadline is not None and time.monotonic() >= deadline:
            return f"Run timed out after {self._timeout}s"
        return None

    def _dispatch(self, node_id: str) -> None:
        graph = self._graph
        node = graph.get_node(node_id)
        dependencies = graph.dependencies(node_id)
        outputs = self._context.outputs.snapshot(graph.ancestors(node_id))
        global_input = self._context.global_input

        upstream = graph.collect_inputs(node_id, outputs, global_input)
        if not dependencies:
            payload = global_input
        elif len(dependencies) == 1:
            payload = outputs.get(dependencies[0])
        else:
            payload = upstream

        scope = TemplateScope(global_input=global_input, outputs=outputs, payload=payload)
        entry = self._log.mark_running(node_id, input=upstream, started_at=_now())
        logger.debug(
            f'Dispatching node "{node.label}"',
            extra={**self._extra, "node_id": node_id, "node_type": node.type.value},
        )
        self._futures[node_id] = self._pool.submit(self._task, node, entry, upstream, payload, scope)

    def _task(
        self,
        node: WorkflowNode,
        entry: ExecutionLogEntry,
        upstream: Any,
        payload: Any,
        scope: TemplateScope,
    ) -> None:
        result = self._executor.run_node(
            node,
            entry,
            upstream=upstream,
            payload=payload,
            scope=scope,
            context=self._context,
            cancel_event=self._node_cancel,
        )
        self._completions.put(result)

    def _complete(self, entry: ExecutionLogEntry) -> None:
        if self._log.status(entry.node_id).is_terminal:
            return
        self._futures.pop(entry.node_id, None)
        self._log.record(entry)

        if entry.status == NodeStatus.FAILED:
            self._skip_descendants(entry.node_id)
            return

        output = self._context.outputs.get(entry.node_id)
        node = self._graph.get_node(entry.node_id)
        for edge in self._graph.outgoing_edges(entry.node_id):
            if not _edge_active(node, edge, output):
                self._skip(edge.target)
                self._skip_descendants(edge.target)

        for dependent in self._graph.dependents(entry.node_id):
            self._unmet[dependent] -= 1
            if self._unmet[dependent] == 0 and self._log.status(dependent) == NodeStatus.PENDING:
                self._dispatch(dependent)

    def _skip(self, node_id: str) -> None:
        entry = self._log.get(node_id)
        if entry.status != NodeStatus.PENDING:
            return
        logger.info(
            f'Skipping node "{entry.node_name}"',
            extra={**self._extra, "node_id": node_id},
        )
        self._log.record(entry.evolve(status=NodeStatus.SKIPPED, completed_at=_now()))

    def _skip_descendants(self, node_id: str) -> None:
        for descendant in self._graph.descendants(node_id):
            self._skip(descendant)

    def _abort(self, reason: str) -> None:
        self._abort_reason = reason
        self._node_cancel.set()
        logger.warning(f"Aborting run: {reason}", extra=self._extra)
        self._record_finished()

        for node_id in self._log.unfinished():
            entry = self._log.get(node_id)
            if entry.status == NodeStatus.RUNNING:
                future = self._futures.pop(node_id, None)
                if future is not None and future.cancel():
                    # Still queued in the pool; it never ran
                    self._log.record(entry.evolve(
                        status=NodeStatus.SKIPPED,
                        input=None,
                        started_at=None,
                        completed_at=_now(),
                    ))
                    continue
                self._log.record(entry.evolve(
                    status=NodeStatus.FAILED,
                    error=f"Cancelled: {reason}",
                    error_category=ErrorCategory.TIMEOUT,
                    completed_at=_now(),
                ))
            else:
                self._skip(node_id)

    def _record_finished(self) -> None:
        """Record entries of tasks that finished before the abort was noticed."""
        while True:
            try:
                entry = self._completions.get_nowait()
            except queue.Empty:
                return
            if not self._log.status(entry.node_id).is_terminal:
                self._futures.pop(entry.node_id, None)
                self._log.record(entry)

    # ==== Result ====

    def _build_result(self) -> ExecutionResult:
        graph = self._graph
        entries = self._log.entries()
        outputs = self._context.outputs

        produced = [
            node.id for node in graph.nodes_of_type(NodeType.OUTPUT)
            if self._log.status(node.id) == NodeStatus.SUCCESS
        ]
        if len(produced) == 1:
            output: Any = outputs.get(produced[0])
        elif produced:
            output = {node_id: outputs.get(node_id) for node_id in produced}
        else:
            output = None

        failed = next((e for e in entries if e.status == NodeStatus.FAILED), None)
        success = failed is None and bool(produced) and self._abort_reason is None

        error: Optional[str] = None
        analysis = None
        if failed is not None:
            node = graph.get_node(failed.node_id)
            error = f'Node "{node.label}" failed: {failed.error}'
            analysis = analyze_error(
                node,
                failed.error or "",
                failed.error_category or ErrorCategory.UNKNOWN,
                graph=graph,
                inputs=failed.input,
            )
        elif self._abort_reason is not None:
            error = self._abort_reason
        elif not produced:
            error = NO_OUTPUT_ERROR

        return ExecutionResult(
            run_id=self._context.run_id,
            success=success,
            output=output,
            logs=entries,
            error=error,
            error_analysis=analysis,
            credits_used=calculate_run_cost(entries),
        )


def _edge_active(source: WorkflowNode, edge: WorkflowEdge, output: Any) -> bool:
    """A branch edge is active only when it matches the condition's branch."""
    if edge.source_handle not in BRANCH_HANDLES:
        return True
    if source.type != NodeType.LOGIC or not isinstance(output, dict) or "branch" not in output:
        return True
    return edge.source_handle == output["branch"]


def _node_ids(nodes: Sequence[Any]) -> List[str]:
    ids = []
    for node in nodes:
        node_id = node.get("id") if isinstance(node, Mapping) else getattr(node, "id", None)
        if node_id is not None:
            ids.append(str(node_id))
    return ids


__all__ = [
    "WorkflowExecutor",
    "describe_node_types",
    "NO_OUTPUT_ERROR",
]
