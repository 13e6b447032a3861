"""
Input Node - validates the run's global input against declared fields.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from flowys.node_sdk.basenode import NodeConfigError, NodeContext, NodeHandler, NodeType

from .config import InputConfig, InputField


_EMPTY_VALUES: Dict[str, Any] = {
    "string": "",
    "number": 0,
    "boolean": False,
    "json": {},
}


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def coerce_value(value: Any, field_type: str) -> Any:
    """
    Coerce a provided value to a declared field type.

    Raises:
        ValueError: If the value cannot represent the type
    """
    if field_type == "string":
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value if isinstance(value, str) else str(value)
    if field_type == "number":
        if isinstance(value, bool):
            raise ValueError("Cannot convert boolean to number")
        if isinstance(value, (int, float)):
            return value
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    if field_type == "boolean":
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        raise ValueError("Cannot convert to boolean")
    if field_type == "json":
        if isinstance(value, (dict, list)):
            return value
        return json.loads(str(value))
    return value


class InputNode(NodeHandler):
    """
    Input - entry point of a workflow.

    Without declared fields the payload passes through unchanged. With
    fields, each one is defaulted or coerced and the result contains
    exactly the declared fields.
    """

    node_type = NodeType.INPUT
    config_model = InputConfig
    display_name = "Input"
    description = "Validates and coerces the workflow input"

    def execute(self, config: InputConfig, context: NodeContext) -> Any:
        payload = context.payload
        if not config.fields:
            return payload if payload is not None else {}

        source = payload if isinstance(payload, dict) else {}
        output: Dict[str, Any] = {}
        errors = []

        for field in config.fields:
            try:
                output[field.name] = self._field_value(field, source.get(field.name))
            except ValueError as e:
                errors.append(f"{field.name}: {e}")

        if errors:
            raise NodeConfigError(
                "Input validation failed: " + "; ".join(errors),
                errors=errors,
            )
        return output

    def _field_value(self, field: InputField, value: Any) -> Any:
        if _is_blank(value):
            if field.default is not None:
                return field.default
            if field.required:
                raise ValueError("required field is missing")
            return _EMPTY_VALUES.get(field.type, "")
        try:
            return coerce_value(value, field.type)
        except (TypeError, ValueError) as e:
            raise ValueError(f"cannot convert {value!r} to {field.type}") from e
