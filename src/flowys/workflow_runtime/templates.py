"""
Template Resolver - Fills {{root.path}} placeholders in node configs.

A placeholder is `{{ root(.segment)* }}` where every part matches
[A-Za-z0-9_-]+. `root` is `input` (the run's global input), the ID of a node
that has already produced output, or a key of the executing node's own
payload. Malformed placeholders raise TemplateError; well-formed ones that
do not resolve become "" and produce a warning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from flowys.node_sdk.basenode import TemplateError
from flowys.node_sdk.items import MISSING, get_path, to_text


_OPEN = "{{"
_CLOSE = "}}"
_PATH = re.compile(r"^[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*$")


@dataclass
class TemplateScope:
    """
    The values a placeholder root may refer to.

    Lookup order for a root: `input`, then produced node outputs, then
    the executing node's payload keys.
    """
    global_input: Any = None
    outputs: Mapping[str, Any] = field(default_factory=dict)
    payload: Any = None

    def lookup(self, path: str) -> Any:
        root, _, rest = path.partition(".")
        if root == "input":
            base: Any = self.global_input
        elif root in self.outputs:
            base = self.outputs[root]
        elif isinstance(self.payload, dict) and root in self.payload:
            base = self.payload[root]
        else:
            return MISSING
        if not rest:
            return base
        return get_path(base, rest)


@dataclass
class TemplateResolution:
    """Resolved text plus any unresolved-reference warnings."""
    text: str
    warnings: List[str] = field(default_factory=list)


def _placeholders(template: str) -> List[tuple[int, int, str]]:
    """
    Locate placeholders as (start, end, inner_path).

    Raises:
        TemplateError: On unclosed, empty or illegal placeholders
    """
    found: List[tuple[int, int, str]] = []
    position = 0
    while True:
        start = template.find(_OPEN, position)
        if start == -1:
            break
        end = template.find(_CLOSE, start + len(_OPEN))
        if end == -1:
            raise TemplateError(f"Unclosed template placeholder at position {start}")
        inner = template[start + len(_OPEN):end]
        if _OPEN in inner:
            raise TemplateError(f"Nested '{{{{' in template placeholder at position {start}")
        path = inner.strip()
        if not path:
            raise TemplateError(f"Empty template placeholder at position {start}")
        if not _PATH.match(path):
            raise TemplateError(f"Malformed template placeholder '{{{{{inner}}}}}'")
        found.append((start, end + len(_CLOSE), path))
        position = end + len(_CLOSE)

    return found


def has_placeholders(value: str) -> bool:
    return _OPEN in value


def resolve(template: str, scope: TemplateScope) -> TemplateResolution:
    """
    Resolve every placeholder in `template`.

    Args:
        template: String possibly containing {{...}} placeholders
        scope: Values available to placeholders

    Returns:
        TemplateResolution with the substituted text and warnings

    Raises:
        TemplateError: If any placeholder is malformed
    """
    if not has_placeholders(template):
        return TemplateResolution(text=template)

    warnings: List[str] = []
    parts: List[str] = []
    cursor = 0
    for start, end, path in _placeholders(template):
        parts.append(template[cursor:start])
        value = scope.lookup(path)
        if value is MISSING:
            warnings.append(f"Unresolved template reference '{{{{{path}}}}}'")
            parts.append("")
        else:
            parts.append(to_text(value))
        cursor = end
    parts.append(template[cursor:])
    return TemplateResolution(text="".join(parts), warnings=warnings)


def resolve_value(
    value: Any,
    scope: TemplateScope,
    warnings: Optional[List[str]] = None,
    preserve_types: bool = True,
) -> Any:
    """
    Resolve placeholders throughout a nested config value.

    With `preserve_types`, a string consisting of exactly one placeholder
    yields the referenced value with its type preserved; other strings are
    interpolated. Dict keys are left untouched.
    """
    sink = warnings if warnings is not None else []
    if isinstance(value, str):
        if not has_placeholders(value):
            return value
        placeholders = _placeholders(value)
        if preserve_types and len(placeholders) == 1:
            start, end, path = placeholders[0]
            if start == 0 and end == len(value):
                resolved = scope.lookup(path)
                if resolved is MISSING:
                    sink.append(f"Unresolved template reference '{{{{{path}}}}}'")
                    return ""
                return resolved
        resolution = resolve(value, scope)
        sink.extend(resolution.warnings)
        return resolution.text
    if isinstance(value, dict):
        return {
            key: resolve_value(item, scope, sink, preserve_types)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [resolve_value(item, scope, sink, preserve_types) for item in value]
    return value

