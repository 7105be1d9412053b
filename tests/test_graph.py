"""
Integration test: the request graph driven directly, using the Mock provider.

Verifies the graph plumbing (routing, event streaming, recursion budget)
rather than the quality of model output.
"""

import pytest

from conftest import error_at, plan_fixture
from orchestrator.events import ABANDONED, COMPLETED, LIFECYCLE, PLAN_GENERATED
from orchestrator.graph import _remediation_route, run_request, stream_request
from orchestrator.models import ABANDONED as ABANDONED_STATE
from orchestrator.state import make_initial_state


@pytest.mark.asyncio
async def test_graph_runs_to_completion_with_mock(harness_factory):
    h = harness_factory()

    final_state = await run_request(h.session.ctx, "req-1", "Write a main module.")

    assert final_state["lifecycle"] == "completed"
    assert isinstance(final_state["events"], list)
    assert final_state["events"][-1]["type"] == COMPLETED
    assert all(e["request_id"] == "req-1" for e in final_state["events"])


@pytest.mark.asyncio
async def test_stream_request_yields_each_event_once(harness_factory):
    h = harness_factory()

    events = []
    async for event in stream_request(h.session.ctx, "req-2", "Write a trivial module."):
        events.append(event)

    types = [e["type"] for e in events]
    assert types[0] == LIFECYCLE
    assert types.count(PLAN_GENERATED) == 1
    assert types.count(COMPLETED) == 1
    states = [e["payload"]["state"] for e in events if e["type"] == LIFECYCLE]
    assert states == ["received", "planned", "applying", "verifying", "completed"]


@pytest.mark.asyncio
async def test_attempt_budget_terminates_within_recursion_limit(harness_factory):
    h = harness_factory(
        fixtures={
            "planner": plan_fixture(
                ("Create a", "a.py", "create"),
                ("Create b", "b.py", "create"),
                ("Create c", "c.py", "create"),
            ),
        },
        diagnostics=[[error_at("a.py"), error_at("b.py", message="TypeError: nope")]],
        max_attempts=5,
    )

    final_state = await run_request(h.session.ctx, "req-3", "three files")

    assert final_state["lifecycle"] == ABANDONED_STATE
    assert final_state["attempts_made"] == 5
    assert final_state["events"][-1]["type"] == ABANDONED
    assert len(h.provider.calls_for("repairer")) == 10


def test_remediation_route_asks_the_engine_for_the_budget(harness_factory):
    h = harness_factory(max_attempts=2)
    state = make_initial_state("r", "x")
    assert _remediation_route(state, h.session.ctx) == "diagnose_failure"
    state["attempts_made"] = 2
    assert _remediation_route(state, h.session.ctx) == "abandon_request"
