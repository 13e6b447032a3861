"""
Output Node - formats the final result of a workflow.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from flowys.node_sdk.basenode import NodeContext, NodeHandler, NodeType
from flowys.node_sdk.items import MISSING, get_path, to_text

from .config import OutputConfig


def _values(payload: Any) -> List[Any]:
    if isinstance(payload, dict):
        return list(payload.values())
    if isinstance(payload, list):
        return payload
    return [] if payload is None else [payload]


def render_markdown(payload: Any) -> str:
    """`## key` section per top-level key; structured values as JSON blocks."""
    if not isinstance(payload, dict):
        payload = {"result": payload}
    sections = []
    for key, value in payload.items():
        if isinstance(value, (dict, list)):
            body = "```json\n" + json.dumps(value, indent=2, default=str) + "\n```"
        else:
            body = to_text(value)
        sections.append(f"## {key}\n\n{body}")
    return "\n\n".join(sections)


class OutputNode(NodeHandler):
    """
    Output - the run's result.

    - json: the payload, or {path: value} for the configured fields
    - text: {"text": ...} from the template or newline-joined values
    - markdown: {"markdown": ...} from the template or one section per key

    `template` is resolved against the payload before this node runs.
    """

    node_type = NodeType.OUTPUT
    config_model = OutputConfig
    display_name = "Output"
    description = "Formats the workflow result as JSON, text or markdown"
    text_fields = ("template",)

    def execute(self, config: OutputConfig, context: NodeContext) -> Any:
        payload = context.payload
        if config.format == "text":
            return {"text": self._text(config, payload)}
        if config.format == "markdown":
            return {"markdown": self._markdown(config, payload)}
        return self._json(config, payload)

    def _json(self, config: OutputConfig, payload: Any) -> Any:
        if config.fields:
            projected: Dict[str, Any] = {}
            for field in config.fields:
                value = get_path(payload, field)
                if value is not MISSING:
                    projected[field] = value
            return projected
        return {} if payload is None else payload

    def _text(self, config: OutputConfig, payload: Any) -> str:
        if config.template is not None:
            return config.template
        return "\n".join(to_text(value) for value in _values(payload))

    def _markdown(self, config: OutputConfig, payload: Any) -> str:
        if config.template is not None:
            return config.template
        return render_markdown(payload)
