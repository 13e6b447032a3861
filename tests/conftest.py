"""Pytest configuration and fixtures."""
import json
import os
from typing import Any

import pytest
import requests

# Set test environment variables
os.environ["FLOWYS_ENV"] = "test"
os.environ["FLOWYS_OPENAI_API_KEY"] = "test-openai-key"
os.environ["FLOWYS_ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["FLOWYS_MAX_CONCURRENCY"] = "4"

from flowys.config import reset_settings  # noqa: E402
from flowys.providers.base import LLMProvider, LLMResponse  # noqa: E402


_REASONS = {
    200: "OK",
    201: "Created",
    204: "No Content",
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
    url: str = "https://api.example.com/",
) -> requests.Response:
    """Build a requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = _REASONS.get(status_code, "")
    response.url = url
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
        response.headers["Content-Type"] = "text/plain"
    response.headers.update(headers or {})
    return response


class FakeTransport:
    """Stands in for requests.request; replays queued responses."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self._queued: list[Any] = []
        self.default = make_response(200, {"ok": True})

    def queue(self, *items: Any) -> None:
        """Queue responses (or exceptions to raise) for upcoming calls."""
        self._queued.extend(items)

    def __call__(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self._queued.pop(0) if self._queued else self.default
        if isinstance(item, Exception):
            raise item
        return item


class FakeProvider(LLMProvider):
    """LLM provider returning canned responses; the last one repeats."""

    name = "fake"

    def __init__(self, *responses: str):
        super().__init__()
        self.responses = list(responses) or ['{"summary": "ok"}']
        self.calls: list[dict[str, Any]] = []

    def complete(self, messages, model, temperature, max_tokens, output_schema=None):
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "output_schema": output_schema,
            }
        )
        content = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return LLMResponse(content=content, model=model)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Every test sees settings built from the current environment."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fake_http(monkeypatch):
    """Route every HttpClient request through a FakeTransport."""
    transport = FakeTransport()
    monkeypatch.setattr("flowys.node_sdk.http.requests.request", transport)
    return transport


@pytest.fixture
def fake_provider():
    """Default fake provider answering with a valid summary object."""
    return FakeProvider()


@pytest.fixture
def executor(fake_provider):
    """Executor whose ai nodes talk to the fake provider."""
    from flowys.workflow_runtime import WorkflowExecutor

    return WorkflowExecutor(providers={"openai": fake_provider, "anthropic": fake_provider})


@pytest.fixture
def sample_anthropic_response():
    """Sample Anthropic API response."""
    return {
        "id": "msg_test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": '{"summary": "A short summary."}',
            }
        ],
        "model": "claude-3-5-sonnet-20241022",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 15,
            "output_tokens": 25,
        },
    }


@pytest.fixture
def sample_openai_response():
    """Sample OpenAI chat completion response."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": '{"summary": "Short."}'},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 12, "completion_tokens": 7},
    }


@pytest.fixture
def response_factory():
    """make_response, for tests that queue their own responses."""
    return make_response


@pytest.fixture
def provider_factory():
    """FakeProvider class, for tests that need specific model answers."""
    return FakeProvider


@pytest.fixture
def make_context():
    """Build a NodeContext for calling a handler directly."""
    from flowys.config import get_settings
    from flowys.node_sdk import NodeContext, NodeType

    def _make(node_type, payload=None, **overrides):
        values = {
            "run_id": "run-test",
            "node_id": f"{NodeType(node_type).value}-1",
            "label": f"{NodeType(node_type).value} node",
            "node_type": NodeType(node_type),
            "global_input": payload,
            "upstream": payload,
            "payload": payload,
            "settings": get_settings(),
        }
        values.update(overrides)
        return NodeContext(**values)

    return _make
