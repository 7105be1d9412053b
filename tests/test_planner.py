"""
Tests for the Plan Generator.
"""

import pytest

from llm.providers.mock_provider import MockProvider
from llm.router import LLMRouter
from orchestrator.errors import AmbiguousRequestError
from orchestrator.models import CREATE, MODIFY, PENDING, FeatureEntry, PlanStep
from orchestrator.planner import PlanGenerator, format_plan


def _planner(fixture):
    provider = MockProvider(fixtures={"planner": fixture})
    return PlanGenerator(LLMRouter(provider=provider)), provider


@pytest.mark.asyncio
async def test_steps_get_sequential_ids_and_pending_status():
    planner, _ = _planner({
        "steps": [
            {"description": "Create the model", "target": "models.py", "action": "create"},
            {"description": "  ", "target": "skip.py"},
            {"description": "Wire the route", "target": "app.py"},
        ],
        "summary": "Add todo items",
    })

    draft = await planner.generate_plan("add todos", "", [])

    assert [(s.id, s.target, s.action, s.status) for s in draft.steps] == [
        (1, "models.py", CREATE, PENDING),
        (2, "app.py", MODIFY, PENDING),
    ]
    assert draft.summary == "Add todo items"


@pytest.mark.asyncio
async def test_summary_falls_back_to_request():
    planner, _ = _planner({"steps": [{"description": "Do it"}], "summary": ""})
    draft = await planner.generate_plan("  make it faster  ", "", [])
    assert draft.summary == "make it faster"


@pytest.mark.asyncio
async def test_no_steps_raises_with_planner_question():
    planner, _ = _planner({"steps": [], "clarification": "Which endpoint is slow?"})

    with pytest.raises(AmbiguousRequestError) as excinfo:
        await planner.generate_plan("make it faster", "", [])

    assert excinfo.value.question == "Which endpoint is slow?"


@pytest.mark.asyncio
async def test_no_steps_without_question_gets_default_question():
    planner, _ = _planner({"steps": []})
    with pytest.raises(AmbiguousRequestError) as excinfo:
        await planner.generate_plan("hmm", "", [])
    assert excinfo.value.question


@pytest.mark.asyncio
async def test_blank_request_does_not_call_the_model():
    planner, provider = _planner({"steps": [{"description": "x"}]})
    with pytest.raises(AmbiguousRequestError):
        await planner.generate_plan("\n\t ", "overview", [])
    assert provider.calls == []


@pytest.mark.asyncio
async def test_prompt_includes_overview_and_history():
    planner, provider = _planner({"steps": [{"description": "x"}]})
    log = [FeatureEntry(summary="Add login"), FeatureEntry(summary="Add logout")]

    await planner.generate_plan("add signup", "An auth service.", log)

    prompt = provider.calls_for("planner")[0].user_prompt
    assert "An auth service." in prompt
    assert "- Add login\n- Add logout" in prompt
    assert "add signup" in prompt


def test_format_plan():
    text = format_plan([PlanStep(1, "Create model", "models.py", CREATE)])
    assert text == "1. [pending] Create model (create models.py)"
