"""
Tests for timeline formatting of loop events.
"""

import pytest

from framework.streaming import build_timeline_text, format_event_for_timeline, stream_events_for_ui
from orchestrator.events import (
    diagnosis_event,
    lifecycle_event,
    plan_event,
    step_event,
    verification_event,
)
from orchestrator.models import CONSOLE, ERROR, DiagnosticEvent, Location, PlanStep


def test_plan_lists_every_step():
    event = plan_event("r", [PlanStep(1, "Create model", "models.py"), PlanStep(2, "Add view")]).to_dict()
    text = format_event_for_timeline(event)
    assert text.splitlines() == [
        "[plan] Plan (2 steps):",
        "    1. Create model -> models.py",
        "    2. Add view -> ?",
    ]


def test_verification_shows_located_errors():
    reading = [DiagnosticEvent(CONSOLE, ERROR, "KeyError: 'id'", Location("api.py", 7))]
    text = format_event_for_timeline(verification_event("r", reading, attempt=2).to_dict())
    assert text.startswith("[attempt 2] Verification: 1 errors, 0 warnings")
    assert "ERROR api.py:7: KeyError: 'id'" in text


def test_step_failure_and_diagnosis():
    failed = step_event("r", PlanStep(3, "Edit ghost", "ghost.py"), ok=False, detail="missing").to_dict()
    assert format_event_for_timeline(failed) == "[plan] FAIL Step 3 failed: Edit ghost (missing)"
    diagnosis = diagnosis_event("r", 1, ["a.py (NameError)"]).to_dict()
    assert format_event_for_timeline(diagnosis) == "[attempt 1] Diagnosis: a.py (NameError)"


def test_timeline_hides_lifecycle_unless_asked():
    events = [lifecycle_event("r", "planned").to_dict(), plan_event("r", []).to_dict()]
    assert build_timeline_text(events) == "[plan] Plan (0 steps):"
    assert build_timeline_text(events, include_internal=True).splitlines()[0] == "[plan] -> planned"


@pytest.mark.asyncio
async def test_stream_stops_at_sentinel():
    async def source():
        yield lifecycle_event("r", "planned").to_dict()
        yield plan_event("r", []).to_dict()
        yield None
        yield plan_event("r", []).to_dict()

    lines = [line async for line in stream_events_for_ui(source())]
    assert lines == ["[plan] Plan (0 steps):"]
