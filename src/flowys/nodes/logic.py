"""
Logic Node - filter, map, reduce, branch and reshape JSON data.

Expressions run in the sandboxed evaluator from flowys.node_sdk.expressions.
Per-item expressions see `item` and `index` in addition to the payload's
top-level keys.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from flowys.node_sdk.basenode import ExpressionError, NodeConfigError, NodeContext, NodeHandler, NodeType
from flowys.node_sdk.expressions import Expression
from flowys.node_sdk.items import find_list, get_path, to_text

from .config import LogicConfig


DEFAULT_LIST_KEY = "data"
DEFAULT_SLICE = "0:10"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> float:
    if _is_number(value):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _numbers(values: List[Any]) -> List[Any]:
    return [v for v in values if _is_number(v)]


REDUCERS: Dict[str, Callable[[List[Any]], Any]] = {
    "sum": lambda values: sum(_as_number(v) for v in values),
    "count": len,
    "avg": lambda values: (sum(_numbers(values)) / len(_numbers(values))) if _numbers(values) else 0,
    "min": lambda values: min(_numbers(values)) if _numbers(values) else None,
    "max": lambda values: max(_numbers(values)) if _numbers(values) else None,
    "concat": lambda values: "".join(to_text(v) for v in values),
    "first": lambda values: values[0] if values else None,
    "last": lambda values: values[-1] if values else None,
}


def _names(payload: Any, **extra: Any) -> Dict[str, Any]:
    """Expression namespace: payload keys, `payload` itself, then extras."""
    names: Dict[str, Any] = dict(payload) if isinstance(payload, dict) else {}
    names.setdefault("data", payload)
    names["payload"] = payload
    names.update(extra)
    return names


def _sort_key(value: Any) -> Tuple[int, Any]:
    if _is_number(value):
        return (0, value)
    return (1, "" if value is None else to_text(value))


class LogicNode(NodeHandler):
    """
    Logic - data operations without side effects.

    Operations:
    - filter: keep list items where `condition` holds
    - map: reshape each item with `mappings` or `expression`
    - reduce: `op[:field]` over the list (sum, count, avg, min, max, concat, first, last)
    - condition: evaluate `condition` and pick the "true" or "false" branch
    - transform: reshape the payload with `mappings` or a dict `expression`
    - passthrough: payload unchanged
    - sort: `asc|desc[:field]`
    - slice: `start:end`
    """

    node_type = NodeType.LOGIC
    config_model = LogicConfig
    display_name = "Logic"
    description = "Filters, maps, reduces, sorts or branches data"

    def execute(self, config: LogicConfig, context: NodeContext) -> Any:
        payload = context.payload
        operation = getattr(self, f"_op_{config.operation}")
        return operation(config, payload)

    # ==== helpers ====

    def _require_list(self, payload: Any, operation: str) -> Tuple[str, List[Any]]:
        key, items = find_list(payload)
        if items is None:
            raise NodeConfigError(
                f"{operation.title()} needs a list of items to work with. "
                "The previous node didn't output any array data."
            )
        return key or DEFAULT_LIST_KEY, items

    def _require(self, value: Optional[str], message: str) -> str:
        if not value or not value.strip():
            raise NodeConfigError(message)
        return value

    # ==== operations ====

    def _op_filter(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        key, items = self._require_list(payload, "filter")
        condition = Expression(self._require(
            config.condition,
            "Filter needs a condition, for example 'item.score > 80'",
        ))
        kept = [
            item for index, item in enumerate(items)
            if condition.evaluate(_names(payload, item=item, index=index))
        ]
        return {key: kept}

    def _op_map(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        key, items = self._require_list(payload, "map")
        if config.mappings:
            mapped = [self._map_item(item, config.mappings) for item in items]
        elif config.expression:
            expression = Expression(config.expression)
            mapped = [
                expression.evaluate(_names(payload, item=item, index=index))
                for index, item in enumerate(items)
            ]
        else:
            mapped = list(items)
        return {key: mapped}

    def _map_item(self, item: Any, mappings: Dict[str, str]) -> Dict[str, Any]:
        result = {}
        for out_key, path in mappings.items():
            relative = path[len("item."):] if path.startswith("item.") else path
            if path == "item":
                result[out_key] = item
            else:
                result[out_key] = get_path(item, relative, None)
        return result

    def _op_reduce(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        _, items = self._require_list(payload, "reduce")
        expression = self._require(
            config.expression,
            "Reduce needs an expression such as 'sum:score' or 'count'",
        )
        op, _, field = expression.strip().partition(":")
        reducer = REDUCERS.get(op)
        if reducer is None:
            raise ExpressionError(
                f"Unknown reduce operation: {op} (expected one of {', '.join(REDUCERS)})"
            )
        values = [get_path(item, field, None) for item in items] if field else list(items)
        return {"result": reducer(values)}

    def _op_condition(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        condition = Expression(self._require(
            config.condition,
            "Condition needs a rule to check, for example 'status == \"active\"'",
        ))
        result = bool(condition.evaluate(_names(payload)))
        return {
            "result": result,
            "branch": "true" if result else "false",
            "data": payload,
        }

    def _op_transform(self, config: LogicConfig, payload: Any) -> Any:
        if config.mappings:
            return {
                out_key: get_path(payload, path, None)
                for out_key, path in config.mappings.items()
            }
        if config.expression:
            result = Expression(config.expression).evaluate(_names(payload))
            if not isinstance(result, dict):
                raise ExpressionError(
                    f"Transform expression must produce an object, got {type(result).__name__}"
                )
            return result
        return payload

    def _op_passthrough(self, config: LogicConfig, payload: Any) -> Any:
        return payload

    def _op_sort(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        key, items = self._require_list(payload, "sort")
        direction, _, field = (config.expression or "asc").strip().partition(":")
        if direction not in ("asc", "desc"):
            raise ExpressionError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")

        def sort_value(item: Any) -> Tuple[int, Any]:
            return _sort_key(get_path(item, field, None) if field else item)

        return {key: sorted(items, key=sort_value, reverse=direction == "desc")}

    def _op_slice(self, config: LogicConfig, payload: Any) -> Dict[str, Any]:
        key, items = self._require_list(payload, "slice")
        start_text, _, end_text = (config.expression or DEFAULT_SLICE).strip().partition(":")
        try:
            start = int(start_text) if start_text.strip() else 0
            end = int(end_text) if end_text.strip() else None
        except ValueError as e:
            raise ExpressionError(
                f"Slice expression must look like 'start:end', got '{config.expression}'"
            ) from e
        return {key: items[start:end]}
