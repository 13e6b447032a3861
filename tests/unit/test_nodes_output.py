"""Tests for the output node."""
from flowys.nodes import OutputNode, parse_node_config
from flowys.nodes.output import render_markdown


def run_output(make_context, config, payload):
    return OutputNode().execute(parse_node_config("output", config), make_context("output", payload))


def test_json_passthrough(make_context):
    assert run_output(make_context, {}, {"items": [2, 3]}) == {"items": [2, 3]}
    assert run_output(make_context, {}, None) == {}


def test_json_fields_projection(make_context):
    payload = {"user": {"name": "Ada", "email": "ada@example.com"}, "score": 9}

    result = run_output(make_context, {"fields": ["user.name", "score", "absent"]}, payload)

    assert result == {"user.name": "Ada", "score": 9}


def test_text_joins_values(make_context):
    result = run_output(make_context, {"format": "text"}, {"a": "first", "b": 2, "c": {"x": 1}})

    assert result == {"text": 'first\n2\n{"x":1}'}


def test_text_template(make_context):
    assert run_output(make_context, {"format": "text", "template": "Done"}, {"a": 1}) == {"text": "Done"}


def test_markdown(make_context):
    result = run_output(make_context, {"format": "markdown"}, {"summary": "Short", "tags": ["a"]})

    markdown = result["markdown"]
    assert markdown.startswith("## summary\n\nShort")
    assert "## tags\n\n```json\n[\n  \"a\"\n]\n```" in markdown


def test_render_markdown_wraps_scalars():
    assert render_markdown("hello") == "## result\n\nhello"
