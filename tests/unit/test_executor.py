"""Tests for the concurrent workflow executor."""
import threading

import pytest

from flowys.config.settings import Settings
from flowys.integrations import (
    ActionResult,
    ConnectionData,
    IntegrationAction,
    IntegrationDefinition,
    IntegrationHandler,
    IntegrationRegistry,
)
from flowys.node_sdk import ErrorCategory, HttpClient, HttpResponse
from flowys.providers.base import LLMResponse
from flowys.workflow_runtime import (
    ExecutionEvent,
    NodeStatus,
    WorkflowDefinition,
    WorkflowExecutor,
    describe_node_types,
)
from flowys.workflow_runtime.executor import NO_OUTPUT_ERROR


def node(node_id, node_type, label=None, **config):
    data = {"id": node_id, "type": node_type, "config": config}
    if label:
        data["label"] = label
    return data


def edge(source, target, handle=None):
    data = {"source": source, "target": target}
    if handle:
        data["sourceHandle"] = handle
    return data


def statuses(result):
    return {entry.node_id: entry.status for entry in result.logs}


class TestLinearRuns:
    """Straight-line workflows."""

    def test_filter_pipeline(self, executor):
        nodes = [
            node("in", "input"),
            node("keep", "logic", operation="filter", condition="item > 1"),
            node("out", "output"),
        ]
        edges = [edge("in", "keep"), edge("keep", "out")]

        result = executor.execute(nodes, edges, input={"items": [1, 2, 3]})

        assert result.success is True
        assert result.output == {"items": [2, 3]}
        assert result.error is None
        assert result.credits_used == 1
        assert [e.node_id for e in result.logs] == ["in", "keep", "out"]
        assert all(e.status == NodeStatus.SUCCESS for e in result.logs)
        assert result.get_log("keep").input == {"items": [1, 2, 3]}
        assert result.duration_ms >= 0

    def test_ai_summary(self, executor, fake_provider):
        nodes = [
            node("in", "input"),
            node(
                "sum",
                "ai",
                provider="anthropic",
                model="claude-3-5-sonnet-20241022",
                userPromptTemplate="Summarize: {{input.text}}",
                outputSchema={"properties": {"summary": {"type": "string"}}, "required": ["summary"]},
            ),
            node("out", "output"),
        ]
        edges = [edge("in", "sum"), edge("sum", "out")]

        result = executor.execute(nodes, edges, input={"text": "a long article"})

        assert result.success is True
        assert result.output == {"summary": "ok"}
        assert result.credits_used == 10
        assert fake_provider.calls[0]["messages"][1].content == "Summarize: a long article"

    def test_templates_reach_ancestor_outputs(self, executor, fake_http, response_factory):
        fake_http.queue(response_factory(200, {"name": "Ada"}))
        nodes = [
            node("in", "input"),
            node("user", "api", url="https://api.example.com/users/{{in.userId}}"),
            node("out", "output", format="text", template="Hello {{user.name}} (#{{input.userId}})"),
        ]
        edges = [edge("in", "user"), edge("user", "out")]

        result = executor.execute(nodes, edges, input={"userId": 7})

        assert fake_http.calls[0]["url"] == "https://api.example.com/users/7"
        assert result.output == {"text": "Hello Ada (#7)"}

    def test_unresolved_placeholder_is_a_warning(self, executor):
        nodes = [node("out", "output", format="text", template="Hi {{input.missing}}!")]

        result = executor.execute(nodes, [], input={})

        entry = result.get_log("out")
        assert result.success is True
        assert result.output == {"text": "Hi !"}
        assert entry.warnings == ["Unresolved template reference '{{input.missing}}'"]

    def test_malformed_placeholder_fails_the_node(self, executor):
        nodes = [node("out", "output", format="text", template="Hi {{input.name")]

        result = executor.execute(nodes, [], input={})

        entry = result.get_log("out")
        assert entry.status == NodeStatus.FAILED
        assert entry.error_category == ErrorCategory.VALIDATION
        assert result.success is False

    def test_invalid_config_fails_the_node(self, executor):
        nodes = [node("call", "api", url="ftp://example.com"), node("out", "output")]

        result = executor.execute(nodes, [edge("call", "out")])

        assert result.get_log("call").error_category == ErrorCategory.VALIDATION
        assert statuses(result)["out"] == NodeStatus.SKIPPED
        assert result.error.startswith('Node "call" failed: Invalid api node configuration')
        assert result.error_analysis.category == ErrorCategory.VALIDATION


class TestFailureIsolation:
    """A failure skips dependents only."""

    def test_failed_api_skips_dependents(self, executor, fake_http, response_factory):
        fake_http.queue(response_factory(500, text="boom"))
        nodes = [node("fetch", "api", label="Fetch", url="https://api.example.com/x"), node("out", "output")]

        result = executor.execute(nodes, [edge("fetch", "out")])

        assert result.success is False
        assert statuses(result) == {"fetch": NodeStatus.FAILED, "out": NodeStatus.SKIPPED}
        assert result.get_log("fetch").error_category == ErrorCategory.NETWORK
        assert result.get_log("out").error is None
        assert result.error.startswith('Node "Fetch" failed: HTTP 500')
        assert result.error_analysis.failed_node == "Fetch"
        assert result.error_analysis.affected_nodes == ["out"]
        assert result.output is None
        assert result.credits_used == 1

    def test_independent_branch_keeps_running(self, executor, fake_http, response_factory):
        fake_http.queue(response_factory(503, text="down"))
        nodes = [
            node("in", "input"),
            node("fetch", "api", url="https://api.example.com/x"),
            node("out-a", "output"),
            node("count", "logic", operation="reduce", expression="count"),
            node("out-b", "output"),
        ]
        edges = [
            edge("in", "fetch"),
            edge("fetch", "out-a"),
            edge("in", "count"),
            edge("count", "out-b"),
        ]

        result = executor.execute(nodes, edges, input={"data": [1, 2, 3]})

        assert statuses(result) == {
            "in": NodeStatus.SUCCESS,
            "fetch": NodeStatus.FAILED,
            "out-a": NodeStatus.SKIPPED,
            "count": NodeStatus.SUCCESS,
            "out-b": NodeStatus.SUCCESS,
        }
        assert result.output == {"result": 3}
        assert result.success is False
        assert result.credits_used == 2

    def test_schema_mismatch(self, provider_factory):
        provider = provider_factory("not json")
        executor = WorkflowExecutor(providers={"openai": provider})
        nodes = [
            node(
                "ai",
                "ai",
                provider="openai",
                model="gpt-4o-mini",
                userPromptTemplate="Classify",
                outputSchema={"properties": {"label": {"type": "string"}}, "required": ["label"]},
            ),
            node("out", "output"),
        ]

        result = executor.execute(nodes, [edge("ai", "out")])

        entry = result.get_log("ai")
        assert entry.status == NodeStatus.FAILED
        assert entry.error_category == ErrorCategory.SCHEMA_MISMATCH
        assert result.error_analysis.category == ErrorCategory.SCHEMA_MISMATCH
        assert result.credits_used == 10
        assert len(provider.calls) == 3

    def test_unexpected_exception_is_captured(self, executor, fake_http):
        fake_http.queue(RuntimeError("kaboom"))
        nodes = [node("fetch", "api", url="https://api.example.com/x"), node("out", "output")]

        result = executor.execute(nodes, [edge("fetch", "out")])

        entry = result.get_log("fetch")
        assert entry.status == NodeStatus.FAILED
        assert entry.error == "kaboom"
        assert entry.error_category == ErrorCategory.UNKNOWN


class TestStructure:
    """Graphs that cannot run."""

    def test_cycle_runs_nothing(self, executor):
        nodes = [node("a", "logic"), node("b", "logic"), node("out", "output")]
        edges = [edge("a", "b"), edge("b", "a"), edge("b", "out")]

        result = executor.execute(nodes, edges)

        assert result.success is False
        assert result.logs == []
        assert "cycle" in result.error
        assert result.error_analysis.category == ErrorCategory.VALIDATION
        assert result.credits_used == 0

    def test_no_output_node(self, executor):
        result = executor.execute([node("a", "input")], [])

        assert result.success is False
        assert "output node" in result.error

    def test_output_node_skipped(self, executor):
        nodes = [
            node("cond", "logic", operation="condition", condition="false"),
            node("out", "output"),
        ]

        result = executor.execute(nodes, [edge("cond", "out", handle="true")], input={})

        assert result.success is False
        assert result.error == NO_OUTPUT_ERROR
        assert result.error_analysis is None


class TestBranching:
    """Condition nodes route through true/false handles."""

    @pytest.fixture
    def branching(self):
        nodes = [
            node("in", "input"),
            node("check", "logic", operation="condition", condition="score > 50"),
            node("high", "output", format="text", template="High: {{input.score}}"),
            node("shape", "logic", operation="transform", mappings={"score": "data.score"}),
            node("low", "output"),
        ]
        edges = [
            edge("in", "check"),
            edge("check", "high", handle="true"),
            edge("check", "shape", handle="false"),
            edge("shape", "low"),
        ]
        return nodes, edges

    def test_true_branch(self, executor, branching):
        result = executor.execute(*branching, input={"score": 80})

        assert result.success is True
        assert result.output == {"text": "High: 80"}
        assert statuses(result)["shape"] == NodeStatus.SKIPPED
        assert statuses(result)["low"] == NodeStatus.SKIPPED
        assert result.credits_used == 1

    def test_false_branch(self, executor, branching):
        result = executor.execute(*branching, input={"score": 20})

        assert result.success is True
        assert result.output == {"score": 20}
        assert statuses(result)["high"] == NodeStatus.SKIPPED
        assert result.credits_used == 2

    def test_merged_input_keyed_by_handle_and_source(self, executor):
        nodes = [
            node("a", "logic", operation="transform", mappings={"x": "x"}),
            node("b", "logic", operation="transform", mappings={"y": "y"}),
            node("out", "output"),
        ]
        edges = [edge("a", "out", handle="left"), edge("b", "out")]

        result = executor.execute(nodes, edges, input={"x": 1, "y": 2})

        assert result.output == {"left": {"x": 1}, "b": {"y": 2}}


class TestConcurrency:
    """Scheduling."""

    def test_roots_run_in_parallel(self, executor, fake_http, monkeypatch):
        barrier = threading.Barrier(2, timeout=5)
        original = HttpClient.request

        def request(self, method, url, **kwargs):
            # Both roots must be in flight at once to get past the barrier
            barrier.wait()
            return original(self, method, url, **kwargs)

        monkeypatch.setattr(HttpClient, "request", request)
        nodes = [
            node("a", "api", url="https://api.example.com/a"),
            node("b", "api", url="https://api.example.com/b"),
            node("out", "output"),
        ]

        result = executor.execute(nodes, [edge("a", "out"), edge("b", "out")])

        assert result.success is True
        assert set(result.output) == {"a", "b"}
        assert len(fake_http.calls) == 2

    def test_progress_follows_completion_order(self, executor):
        seen = []
        nodes = [node("in", "input"), node("mid", "logic"), node("out", "output")]

        result = executor.execute(
            nodes,
            [edge("in", "mid"), edge("mid", "out")],
            input={"v": 1},
            on_progress=lambda entry, entries: seen.append((entry.node_id, len(entries))),
        )

        assert seen == [("in", 1), ("mid", 2), ("out", 3)]
        assert [e.node_id for e in result.logs] == ["in", "mid", "out"]

    def test_multiple_outputs_keyed_by_id(self, executor):
        nodes = [node("in", "input"), node("o1", "output"), node("o2", "output", fields=["v"])]

        result = executor.execute(nodes, [edge("in", "o1"), edge("in", "o2")], input={"v": 1, "w": 2})

        assert result.output == {"o1": {"v": 1, "w": 2}, "o2": {"v": 1}}

    def test_http_client_factory_is_used(self, response_factory):
        built = []

        class RecordingClient(HttpClient):
            def __init__(self, **kwargs):
                super().__init__(**kwargs)
                built.append(kwargs)

            def request(self, method, url, **kwargs):
                return HttpResponse(response_factory(200, {"ok": 1}))

        executor = WorkflowExecutor(providers={}, http_client_factory=RecordingClient)
        nodes = [node("call", "api", url="https://api.example.com/x", timeout=3), node("out", "output")]

        result = executor.execute(nodes, [edge("call", "out")])

        assert result.output == {"ok": 1}
        assert built == [{"timeout": 3}]


class BlockingProvider:
    """Provider whose calls block until released."""

    name = "blocking"

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = 0

    def complete(self, messages, model, temperature, max_tokens, output_schema=None):
        self.calls += 1
        self.started.set()
        self.release.wait(5)
        return LLMResponse(content="late", model=model)


class TestAbort:
    """Timeouts and cancellation."""

    @pytest.fixture
    def blocking(self):
        provider = BlockingProvider()
        yield provider
        provider.release.set()

    def slow_workflow(self):
        nodes = [
            node("ai", "ai", provider="openai", model="gpt-4o-mini", userPromptTemplate="Wait"),
            node("out", "output"),
        ]
        return nodes, [edge("ai", "out")]

    def test_timeout(self, blocking):
        executor = WorkflowExecutor(providers={"openai": blocking})

        result = executor.execute(*self.slow_workflow(), timeout=0.2)

        entry = result.get_log("ai")
        assert entry.status == NodeStatus.FAILED
        assert entry.error == "Cancelled: Run timed out after 0.2s"
        assert entry.error_category == ErrorCategory.TIMEOUT
        assert statuses(result)["out"] == NodeStatus.SKIPPED
        assert result.success is False
        assert "Run timed out" in result.error
        assert result.output is None

    def test_cancel_event(self, blocking):
        executor = WorkflowExecutor(providers={"openai": blocking})
        cancel = threading.Event()

        def cancel_when_started():
            blocking.started.wait(5)
            cancel.set()

        threading.Thread(target=cancel_when_started, daemon=True).start()
        result = executor.execute(*self.slow_workflow(), cancel_event=cancel)

        assert result.get_log("ai").error == "Cancelled: Run was cancelled"
        assert statuses(result)["out"] == NodeStatus.SKIPPED
        assert result.success is False

    def test_cancelled_before_start(self, executor):
        cancel = threading.Event()
        cancel.set()
        nodes = [node("in", "input"), node("out", "output")]

        result = executor.execute(nodes, [edge("in", "out")], input={}, cancel_event=cancel)

        assert statuses(result) == {"in": NodeStatus.SKIPPED, "out": NodeStatus.SKIPPED}
        assert result.success is False
        assert result.error == "Run was cancelled"
        assert result.credits_used == 0

    def test_queued_nodes_are_skipped_not_charged(self, blocking):
        executor = WorkflowExecutor(
            settings=Settings(max_concurrency=1),
            providers={"openai": blocking},
        )
        nodes = [
            node("a1", "ai", provider="openai", model="gpt-4o-mini", userPromptTemplate="One"),
            node("a2", "ai", provider="openai", model="gpt-4o-mini", userPromptTemplate="Two"),
            node("out", "output"),
        ]
        cancel = threading.Event()

        def cancel_when_started():
            blocking.started.wait(5)
            cancel.set()

        threading.Thread(target=cancel_when_started, daemon=True).start()
        result = executor.execute(nodes, [edge("a1", "out"), edge("a2", "out")], cancel_event=cancel)

        assert blocking.calls == 1
        assert statuses(result) == {
            "a1": NodeStatus.FAILED,
            "a2": NodeStatus.SKIPPED,
            "out": NodeStatus.SKIPPED,
        }
        assert result.get_log("a1").error == "Cancelled: Run was cancelled"
        queued = result.get_log("a2")
        assert queued.error is None
        assert queued.started_at is None
        assert queued.input is None
        assert result.credits_used == 10


class TestStream:
    """Live event stream."""

    def test_events(self, executor):
        nodes = [node("in", "input"), node("out", "output")]

        events = list(executor.stream(nodes, [edge("in", "out")], input={"a": 1}))

        assert [e.event for e in events] == ["started", "node-update", "node-update", "completed"]
        assert events[0].data["nodes"] == ["in", "out"]
        assert events[1].data["log"]["nodeId"] == "in"
        assert len(events[2].data["logs"]) == 2
        assert events[-1].data["success"] is True
        assert events[-1].data["output"] == {"a": 1}
        assert all(isinstance(e, ExecutionEvent) for e in events)

    def test_structural_error_completes(self, executor):
        events = list(executor.stream([], []))

        assert [e.event for e in events] == ["started", "completed"]
        assert events[-1].data["success"] is False


class TestSingleNode:
    """test_node and execute_definition."""

    def test_test_node_success(self, executor):
        entry = executor.test_node("logic", {"operation": "filter", "condition": "item > 1"}, {"data": [1, 2, 3]})

        assert entry.status == NodeStatus.SUCCESS
        assert entry.output == {"data": [2, 3]}
        assert entry.node_name == "Test"

    def test_test_node_failure(self, executor):
        entry = executor.test_node("api", {"url": "not a url"})

        assert entry.status == NodeStatus.FAILED
        assert entry.error_category == ErrorCategory.VALIDATION

    def test_execute_definition(self, executor):
        definition = WorkflowDefinition.model_validate(
            {"name": "Echo", "nodes": [node("out", "output")], "edges": []}
        )

        result = executor.execute_definition(definition, {"hello": "world"})

        assert result.output == {"hello": "world"}


class TestIntegrationNodes:
    def test_integration_node_in_workflow(self):
        class Notes(IntegrationHandler):
            definition = IntegrationDefinition(id="notes", name="Notes", actions=[IntegrationAction(id="create")])

            def execute_action(self, action_id, context):
                return ActionResult(success=True, output={"created": context.input["title"]})

        registry = IntegrationRegistry(
            connection_resolver=lambda cid: ConnectionData(id=cid, integrationId="notes")
        )
        registry.register(Notes())
        executor = WorkflowExecutor(providers={}, integration_registry=registry)
        nodes = [
            node("in", "input"),
            node("save", "integration", integrationId="notes", actionId="create", connectionId="c1"),
            node("out", "output"),
        ]

        result = executor.execute(nodes, [edge("in", "save"), edge("save", "out")], input={"title": "Todo"})

        assert result.output == {"created": "Todo"}
        assert result.credits_used == 1

    def test_builtin_timeout_is_categorized(self):
        class Slow(IntegrationHandler):
            definition = IntegrationDefinition(id="slow", name="Slow", actions=[IntegrationAction(id="fetch")])

            def execute_action(self, action_id, context):
                raise TimeoutError("upstream did not answer")

        registry = IntegrationRegistry(
            connection_resolver=lambda cid: ConnectionData(id=cid, integrationId="slow")
        )
        registry.register(Slow())
        executor = WorkflowExecutor(providers={}, integration_registry=registry)
        nodes = [
            node("fetch", "integration", integrationId="slow", actionId="fetch", connectionId="c1"),
            node("out", "output"),
        ]

        result = executor.execute(nodes, [edge("fetch", "out")], input={})

        entry = result.get_log("fetch")
        assert entry.status == NodeStatus.FAILED
        assert entry.error == "upstream did not answer"
        assert entry.error_category == ErrorCategory.TIMEOUT
        assert result.error_analysis.category == ErrorCategory.TIMEOUT


def test_describe_node_types():
    catalog = {entry["type"]: entry for entry in describe_node_types()}

    assert catalog["ai"]["credits"] == 10
    assert catalog["output"]["credits"] == 0
    assert "configSchema" in catalog["webhook"]
