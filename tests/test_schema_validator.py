"""
Tests for JSON schema validation and extraction from LLM raw output.
"""

import pytest
from llm.schema_validator import parse_and_validate, StructuredOutputError

_EDIT_SCHEMA = {
    "type": "object",
    "required": ["content"],
    "properties": {
        "content": {"type": "string"},
        "explanation": {"type": "string"},
    },
}

_PLAN_SCHEMA = {
    "type": "object",
    "required": ["steps"],
    "properties": {
        "steps": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["description"],
                "properties": {"description": {"type": "string"}},
            },
        },
    },
}


def test_valid_json():
    raw = '{"content": "def f(): pass", "explanation": "simple"}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == "def f(): pass"


def test_json_with_markdown_fence():
    raw = '```json\n{"content": "def f(): pass", "explanation": "simple"}\n```'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == "def f(): pass"


def test_fence_inside_content_is_preserved():
    raw = '{"content": "# Title\\n```python\\nprint(1)\\n```\\n"}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == "# Title\n```python\nprint(1)\n```\n"


def test_json_with_prose_prefix():
    raw = 'Here is the file:\n{"content": "x = 1", "explanation": "simple"}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == "x = 1"


def test_braces_inside_strings_do_not_end_the_object():
    raw = '{"content": "d = {\\"a\\": {}}"} trailing {"content": "other"}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == 'd = {"a": {}}'


def test_invalid_json_raises():
    with pytest.raises(StructuredOutputError) as excinfo:
        parse_and_validate("this is not json", _EDIT_SCHEMA)
    assert excinfo.value.raw_text == "this is not json"


def test_schema_violation_raises():
    # coercion only handles dict/list -> string, not int -> string
    with pytest.raises(StructuredOutputError):
        parse_and_validate('{"content": 123}', _EDIT_SCHEMA)


def test_missing_required_field_raises():
    with pytest.raises(StructuredOutputError):
        parse_and_validate('{"explanation": "forgot the file"}', _EDIT_SCHEMA)


def test_structured_content_is_reserialised():
    # A model writing a JSON file may return the object itself
    raw = '{"content": {"name": "demo", "version": 1}}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert isinstance(result["content"], str)
    assert '"name": "demo"' in result["content"]


def test_bare_string_steps_are_wrapped():
    result = parse_and_validate('{"steps": ["create app.py", {"description": "add route"}]}', _PLAN_SCHEMA)
    assert result["steps"] == [{"description": "create app.py"}, {"description": "add route"}]


def test_non_object_reply_is_rejected():
    with pytest.raises(StructuredOutputError):
        parse_and_validate('["content", "x"]', {})


def test_no_schema_skips_validation():
    result = parse_and_validate('{"anything": true}', {})
    assert result == {"anything": True}


def test_literal_newlines_in_string_value_parse():
    # Literal newline characters inside a JSON string value, not \n escapes
    raw = '{"content": "line one\nline two\n"}'
    result = parse_and_validate(raw, _EDIT_SCHEMA)
    assert result["content"] == "line one\nline two\n"
