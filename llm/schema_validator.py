"""
JSON schema validator for structured model outputs.

Models frequently wrap JSON in prose or markdown fences, or return slightly
off shapes. This module:
  1. Strips a wrapping markdown fence (only when the whole reply is fenced;
     file contents inside JSON strings often contain fences of their own)
  2. Extracts the first complete JSON object
  3. Coerces common shape mistakes
  4. Validates against the role's JSON schema and raises typed errors so the
     router can retry
"""

import json
import re
from typing import Any

import jsonschema
from jsonschema import ValidationError as JsonSchemaValidationError

_WRAPPING_FENCE = re.compile(r"^```[\w-]*\s*\n([\s\S]*?)\n?```\s*$")


class StructuredOutputError(Exception):
    """Raised when model output cannot be parsed or validated."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


def _strip_wrapping_fence(text: str) -> str:
    text = text.strip()
    match = _WRAPPING_FENCE.match(text)
    return match.group(1).strip() if match else text


def _extract_json_object(text: str) -> str:
    """Return the first balanced {...} span, honouring string literals."""
    start = text.find("{")
    if start == -1:
        return text
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
        elif ch == "\\" and in_string:
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def _coerce_parsed(parsed: dict[str, Any], schema: dict) -> dict[str, Any]:
    """
    Best-effort fixes before validation:
      - structured values under a required string field are re-serialised
        (a model returning {"content": {...}} for a JSON file)
      - arrays of objects given as bare strings are wrapped using the item
        schema's first required field ("steps": ["do x"] -> [{"description": "do x"}])
    """
    properties = schema.get("properties", {})
    required = schema.get("required", [])

    for name, definition in properties.items():
        value = parsed.get(name)
        if definition.get("type") == "string" and name in required:
            if isinstance(value, (dict, list)):
                parsed[name] = json.dumps(value, indent=2)
        elif definition.get("type") == "array" and isinstance(value, list):
            items = definition.get("items", {})
            item_required = items.get("required", [])
            if items.get("type") == "object" and item_required:
                parsed[name] = [
                    {item_required[0]: v} if isinstance(v, str) else v
                    for v in value
                ]
    return parsed


def parse_and_validate(raw_text: str, schema: dict) -> dict[str, Any]:
    """
    Parse raw model text into a validated dict.

    Raises StructuredOutputError if the text is not a JSON object or the
    object fails schema validation after coercion.
    """
    extracted = _extract_json_object(_strip_wrapping_fence(raw_text))

    try:
        # strict=False tolerates literal newlines inside string values
        parsed = json.loads(extracted, strict=False)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"JSON parse failed: {exc}", raw_text=raw_text) from exc

    if not isinstance(parsed, dict):
        raise StructuredOutputError(
            f"Expected a JSON object, got {type(parsed).__name__}", raw_text=raw_text
        )

    if schema:
        parsed = _coerce_parsed(parsed, schema)
        try:
            jsonschema.validate(instance=parsed, schema=schema)
        except JsonSchemaValidationError as exc:
            raise StructuredOutputError(
                f"Schema validation failed: {exc.message}", raw_text=raw_text
            ) from exc

    return parsed
