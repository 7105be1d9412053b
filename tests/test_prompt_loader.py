"""
Tests for the prompt loader and template rendering.
"""

import pytest
from llm.prompt_loader import (
    get_system_prompt,
    get_schema,
    render_template,
    list_available_roles,
    invalidate_cache,
)


def setup_function():
    invalidate_cache()  # ensure fresh state per test


def test_list_available_roles():
    assert list_available_roles() == ["implementer", "planner", "repairer"]


@pytest.mark.parametrize("role", ["planner", "implementer", "repairer"])
def test_every_role_asks_for_json(role):
    prompt = get_system_prompt(role)
    assert len(prompt) > 10
    assert "JSON" in prompt


def test_planner_schema_requires_steps():
    schema = get_schema("planner")
    assert schema.get("type") == "object"
    assert schema["required"] == ["steps"]
    assert schema["properties"]["steps"]["items"]["required"] == ["description"]


@pytest.mark.parametrize("role", ["implementer", "repairer"])
def test_edit_roles_return_full_content(role):
    schema = get_schema(role)
    assert "content" in schema["required"]


def test_render_plan_template():
    rendered = render_template(
        "planner",
        "plan",
        {
            "overview": "A blog engine.",
            "feature_log": "- Add posts",
            "request": "Add comments",
        },
    )
    assert "A blog engine." in rendered
    assert "- Add posts" in rendered
    assert "Add comments" in rendered
    # Escaped braces survive as literal JSON
    assert '{"steps": [{"description"' in rendered


def test_render_template_missing_variable_shows_marker():
    rendered = render_template("repairer", "repair", {"request": "fix it"})
    assert "<MISSING:diagnostics>" in rendered
    assert "fix it" in rendered


def test_render_template_invalid_key():
    with pytest.raises(KeyError):
        render_template("planner", "nonexistent_template", {})


def test_unknown_role_raises():
    with pytest.raises(FileNotFoundError):
        get_system_prompt("nonexistent_role_xyz")
