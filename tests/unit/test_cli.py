"""Tests for CLI commands."""
import json
from argparse import Namespace
from unittest.mock import patch

import pytest

from flowys.cli import cmd_cost, cmd_nodes, cmd_run, cmd_validate, main

WORKFLOW = {
    "name": "Filter numbers",
    "nodes": [
        {"id": "in", "type": "input"},
        {"id": "keep", "type": "logic", "config": {"operation": "filter", "condition": "item > 1"}},
        {"id": "out", "type": "output"},
    ],
    "edges": [{"source": "in", "target": "keep"}, {"source": "keep", "target": "out"}],
}

YAML_WORKFLOW = """
name: Greeting
nodes:
  - id: out
    type: output
    config:
      format: text
      template: "Hello {{input.name}}"
edges: []
"""


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(WORKFLOW))
    return path


class TestCmdRun:
    """Test cmd_run function."""

    @patch("flowys.cli.setup_logging")
    def test_run_prints_result(self, mock_logging, workflow_file, capsys):
        args = Namespace(workflow=str(workflow_file), input='{"items": [1, 2, 3]}', stream=False, timeout=None)

        assert cmd_run(args) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["success"] is True
        assert result["output"] == {"items": [2, 3]}
        assert result["creditsUsed"] == 1

    @patch("flowys.cli.setup_logging")
    def test_run_yaml_with_input_file(self, mock_logging, tmp_path, capsys):
        workflow = tmp_path / "greet.yaml"
        workflow.write_text(YAML_WORKFLOW)
        payload = tmp_path / "input.json"
        payload.write_text('{"name": "Ada"}')
        args = Namespace(workflow=str(workflow), input=f"@{payload}", stream=False, timeout=None)

        assert cmd_run(args) == 0
        assert json.loads(capsys.readouterr().out)["output"] == {"text": "Hello Ada"}

    @patch("flowys.cli.setup_logging")
    def test_run_stream(self, mock_logging, workflow_file, capsys):
        args = Namespace(workflow=str(workflow_file), input='{"items": [5]}', stream=True, timeout=None)

        assert cmd_run(args) == 0

        events = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [e["event"] for e in events] == ["started", "node-update", "node-update", "node-update", "completed"]

    @patch("flowys.cli.setup_logging")
    def test_run_missing_file(self, mock_logging, tmp_path, capsys):
        args = Namespace(workflow=str(tmp_path / "nope.json"), input=None, stream=False, timeout=None)

        assert cmd_run(args) == 1
        assert "Workflow file not found" in capsys.readouterr().err

    @patch("flowys.cli.setup_logging")
    def test_run_bad_input(self, mock_logging, workflow_file, capsys):
        args = Namespace(workflow=str(workflow_file), input="{oops", stream=False, timeout=None)

        assert cmd_run(args) == 1
        assert capsys.readouterr().err.startswith("Error:")


class TestCmdValidate:
    """Test cmd_validate function."""

    def test_valid(self, workflow_file, capsys):
        assert cmd_validate(Namespace(workflow=str(workflow_file))) == 0
        assert capsys.readouterr().out.strip() == "Filter numbers: OK (3 nodes, 2 edges)"

    def test_reports_graph_and_config_problems(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text(
            json.dumps(
                {
                    "name": "Broken",
                    "nodes": [{"id": "call", "type": "api", "config": {"url": "nowhere"}}],
                    "edges": [],
                }
            )
        )

        assert cmd_validate(Namespace(workflow=str(path))) == 1

        out = capsys.readouterr().out
        assert "Broken: 2 problem(s)" in out
        assert "output node" in out
        assert 'Node "call" (api)' in out


def test_cmd_cost(workflow_file, capsys):
    assert cmd_cost(Namespace(workflow=str(workflow_file))) == 0
    assert capsys.readouterr().out.strip() == "1"


def test_cmd_nodes_json(capsys):
    assert cmd_nodes(Namespace(json=True)) == 0

    catalog = json.loads(capsys.readouterr().out)
    assert {entry["type"] for entry in catalog} == {
        "input", "api", "ai", "logic", "output", "webhook", "integration",
    }


def test_cmd_nodes_table(capsys):
    assert cmd_nodes(Namespace(json=False)) == 0
    assert "ai" in capsys.readouterr().out


def test_main_without_command(capsys):
    assert main([]) == 1


def test_main_dispatches(workflow_file, capsys):
    assert main(["cost", str(workflow_file)]) == 0
    assert capsys.readouterr().out.strip() == "1"
