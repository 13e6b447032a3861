"""JSON extraction and output-schema checks for model responses."""
import json
import re
from typing import Any, Union

from pydantic import StrictBool, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

from flowys.node_sdk.basenode import OutputSchemaError

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_TYPE_ADAPTERS: dict[str, TypeAdapter] = {
    "string": TypeAdapter(StrictStr),
    "number": TypeAdapter(Union[StrictInt, StrictFloat]),
    "integer": TypeAdapter(StrictInt),
    "boolean": TypeAdapter(StrictBool),
    "array": TypeAdapter(list),
    "object": TypeAdapter(dict),
}

_TYPE_NAMES = {
    "string": "a string",
    "number": "a number",
    "integer": "an integer",
    "boolean": "a boolean",
    "array": "an array",
    "object": "an object",
}


def looks_like_json(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith(("{", "[", "```"))


def _candidates(text: str) -> list[str]:
    stripped = text.strip()
    found = [stripped]
    fenced = _FENCE.search(stripped)
    if fenced:
        found.append(fenced.group(1).strip())
    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = stripped.find(open_char)
        end = stripped.rfind(close_char)
        if start != -1 and end > start:
            found.append(stripped[start:end + 1])
    return found


def extract_json(text: str) -> Any:
    """
    Parse JSON from a model response.

    Handles bare JSON, ```json fences, JSON surrounded by prose and
    trailing commas.

    Raises:
        OutputSchemaError: If no JSON value can be recovered
    """
    for candidate in _candidates(text):
        for attempt in (candidate, _TRAILING_COMMA.sub(r"\1", candidate)):
            try:
                return json.loads(attempt)
            except ValueError:
                continue
    preview = text.strip()[:200]
    raise OutputSchemaError(
        f"Response is not valid JSON: {preview!r}",
        raw_response=text,
        errors=["Response is not valid JSON"],
    )


def schema_errors(data: Any, schema: dict[str, Any]) -> list[str]:
    """
    Problems with `data` against an object schema (empty when it conforms).

    Checks required fields and the declared type of every present property.
    """
    if not isinstance(data, dict):
        return ["Response must be a JSON object"]

    errors: list[str] = []
    properties: dict[str, dict[str, Any]] = schema.get("properties") or {}

    for name in schema.get("required") or []:
        if name not in data or data[name] is None:
            errors.append(f"Missing required field: {name}")

    for name, prop in properties.items():
        if name not in data or data[name] is None:
            continue
        expected = prop.get("type")
        adapter = _TYPE_ADAPTERS.get(expected) if expected else None
        if adapter is None:
            continue
        try:
            adapter.validate_python(data[name], strict=True)
        except ValidationError:
            errors.append(f"Field {name} must be {_TYPE_NAMES[expected]}")

    return errors


def parse_with_schema(text: str, schema: dict[str, Any]) -> dict[str, Any]:
    """
    Extract JSON from `text` and check it against `schema`.

    Raises:
        OutputSchemaError: If the text is not JSON or does not conform
    """
    data = extract_json(text)
    errors = schema_errors(data, schema)
    if errors:
        raise OutputSchemaError(
            "Response does not match output schema: " + "; ".join(errors),
            raw_response=text,
            errors=errors,
        )
    return data
