"""
Node Items - Helpers for the JSON data flowing through workflows.

Node outputs are plain JSON-compatible values (dicts, lists, scalars).
These helpers navigate them by dot-path and locate the list a
collection-oriented node should operate on.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple


MISSING = object()

# Keys checked, in order, when looking for the list inside a payload
COMMON_LIST_KEYS = (
    "data",
    "items",
    "results",
    "list",
    "records",
    "rows",
    "entries",
)


def split_path(path: str) -> List[str]:
    """Split a dot-path, ignoring empty segments."""
    return [segment for segment in path.split(".") if segment != ""]


def get_path(data: Any, path: str, default: Any = MISSING) -> Any:
    """
    Resolve a dot-path inside nested dicts and lists.

    Integer segments index into lists. Returns `default` (MISSING unless
    given) when any segment does not resolve.

    Example:
        get_path({"user": {"tags": ["a", "b"]}}, "user.tags.1")  # -> "b"
    """
    current = data
    for segment in split_path(path):
        if isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, list):
            try:
                index = int(segment)
            except ValueError:
                return default
            if not -len(current) <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def find_list(payload: Any) -> Tuple[Optional[str], Optional[List[Any]]]:
    """
    Locate the list a collection operation should act on.

    Returns (key, items). `key` is None when the payload itself is a list.
    Common keys are preferred, then the first list-valued key, then one
    level down into nested dicts.
    """
    if isinstance(payload, list):
        return None, payload
    if not isinstance(payload, dict):
        return None, None

    for key in COMMON_LIST_KEYS:
        if isinstance(payload.get(key), list):
            return key, payload[key]

    for key, value in payload.items():
        if isinstance(value, list):
            return key, value

    for value in payload.values():
        if isinstance(value, dict):
            key, items = find_list(value)
            if items is not None:
                return key, items

    return None, None


def to_text(value: Any) -> str:
    """Render a value for string interpolation."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)
