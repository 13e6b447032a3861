"""Integration tests for the execution API endpoints."""
import json

import pytest
from fastapi.testclient import TestClient

from flowys.api.dependencies import get_executor
from flowys.api.main import app

FILTER_WORKFLOW = {
    "name": "Filter",
    "nodes": [
        {"id": "in", "type": "input"},
        {"id": "keep", "type": "logic", "config": {"operation": "filter", "condition": "item > 1"}},
        {"id": "out", "type": "output"},
    ],
    "edges": [{"source": "in", "target": "keep"}, {"source": "keep", "target": "out"}],
    "input": {"items": [1, 2, 3]},
}


@pytest.fixture
def client(executor):
    """TestClient whose routes use the fake-provider executor."""
    app.dependency_overrides[get_executor] = lambda: executor
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["service"] == "flowys-engine"


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")

    assert response.status_code == 200
    assert "service" in response.json()


def test_execute_workflow(client):
    """A successful run returns the ExecutionResult in camelCase."""
    response = client.post("/v1/executions", json=FILTER_WORKFLOW)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["output"] == {"items": [2, 3]}
    assert data["creditsUsed"] == 1
    assert [log["nodeId"] for log in data["logs"]] == ["in", "keep", "out"]
    assert data["logs"][1]["status"] == "success"
    assert "runId" in data


def test_failed_run_is_not_an_http_error(client):
    """Structural problems come back in the body with success=false."""
    payload = {"nodes": [{"id": "in", "type": "input"}], "edges": []}

    response = client.post("/v1/executions", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["logs"] == []
    assert data["errorAnalysis"]["category"] == "validation"


def test_request_validation(client):
    """Missing nodes or a non-positive timeout is rejected up front."""
    assert client.post("/v1/executions", json={"edges": []}).status_code == 422
    assert client.post("/v1/executions", json={**FILTER_WORKFLOW, "timeout": 0}).status_code == 422


def test_stream_workflow(client):
    """The stream endpoint emits Server-Sent Events."""
    response = client.post("/v1/executions/stream", json=FILTER_WORKFLOW)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    blocks = [block for block in response.text.split("\n\n") if block.strip()]
    names = [block.split("\n")[0].removeprefix("event: ") for block in blocks]
    assert names == ["started", "node-update", "node-update", "node-update", "completed"]

    completed = json.loads(blocks[-1].split("data: ", 1)[1])
    assert completed["output"] == {"items": [2, 3]}


def test_list_node_types(client):
    """The catalog lists every node type with its cost."""
    response = client.get("/v1/nodes")

    assert response.status_code == 200
    catalog = {entry["type"]: entry for entry in response.json()["nodes"]}
    assert catalog["ai"]["credits"] == 10
    assert catalog["logic"]["displayName"] == "Logic"


def test_test_node(client):
    """A single node can be tried out without a workflow."""
    payload = {"type": "logic", "config": {"operation": "reduce", "expression": "sum"}, "input": {"data": [1, 2, 3]}}

    response = client.post("/v1/nodes/test", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["output"] == {"result": 6}
    assert data["log"]["nodeType"] == "logic"


def test_test_node_failure(client):
    """Node failures are reported in the body."""
    response = client.post("/v1/nodes/test", json={"type": "output", "config": {"format": "pdf"}})

    data = response.json()
    assert data["success"] is False
    assert "format" in data["error"]


def test_test_node_unknown_type(client):
    """Unknown node types are rejected by request validation."""
    assert client.post("/v1/nodes/test", json={"type": "database"}).status_code == 422
