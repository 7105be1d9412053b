"""
Request-scoped failures and bookkeeping of the session that owns the active request.

Any exception escaping the graph ends that request as abandoned with one
unresolved report; the session stays usable for the next request.
"""

import asyncio

import pytest

from conftest import error_at, plan_fixture, wait_for_lifecycle
from framework.user_channel import SUMMARY, UNRESOLVED
from orchestrator.models import ABANDONED, COMPLETED, GIVEN_UP

_IMPL = {"content": "def feature():\n    return 1\n", "explanation": "adds feature"}
_PLAN = plan_fixture(("Create the feature module", "feature.py", "create"))


@pytest.mark.asyncio
async def test_invalid_repair_output_abandons_request(harness_factory):
    h = harness_factory(
        fixtures={"planner": _PLAN, "implementer": _IMPL, "repairer": "not json at all"},
        diagnostics=[[error_at("feature.py", 2)]],
    )

    state = await h.session.run("add a feature")

    assert state["lifecycle"] == ABANDONED
    assert state["remediation_outcome"] == GIVEN_UP
    assert state["attempts_made"] == 1
    assert h.session.lifecycle(state["request_id"]) == ABANDONED
    assert h.store.current_plan() == []
    assert h.store.feature_log() == []

    reports = h.session.channel.reports_for(state["request_id"])
    assert [r.kind for r in reports] == [UNRESOLVED]
    assert reports[0].payload["attempts_made"] == 1
    [event] = reports[0].payload["events"]
    assert event["severity"] == "error"
    assert event["message"].startswith("StructuredOutputError")


@pytest.mark.asyncio
async def test_unreachable_provider_abandons_request(harness_factory):
    def offline(request):
        raise RuntimeError("Cannot reach Ollama")

    h = harness_factory(fixtures={"planner": offline})

    state = await h.session.run("add a feature")

    assert state["lifecycle"] == ABANDONED
    assert state["attempts_made"] == 0
    reports = h.session.channel.reports_for(state["request_id"])
    assert [r.kind for r in reports] == [UNRESOLVED]
    assert reports[0].payload["events"][0]["message"] == "RuntimeError: Cannot reach Ollama"


@pytest.mark.asyncio
async def test_unknown_step_abandons_request(harness_factory):
    def vanishing_plan(request):
        # Plan disappears while its step is being applied
        h.store.clear_current_plan()
        return _IMPL

    h = harness_factory(fixtures={"planner": _PLAN, "implementer": vanishing_plan})
    before = h.store.feature_log()

    state = await h.session.run("add a feature")

    assert state["lifecycle"] == ABANDONED
    assert state["give_up_reason"].startswith("UnknownStepError")
    assert h.store.current_plan() == []
    assert h.store.feature_log() == before

    reports = h.session.channel.reports_for(state["request_id"])
    assert [r.kind for r in reports] == [UNRESOLVED]
    assert reports[0].payload["attempts_made"] == 0


@pytest.mark.asyncio
async def test_session_recovers_after_an_abandoned_request(harness_factory):
    calls = {"n": 0}

    def flaky_planner(request):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("Ollama timed out")
        return _PLAN

    h = harness_factory(fixtures={"planner": flaky_planner, "implementer": _IMPL})

    first = await h.session.run("first try")
    second = await h.session.run("second try")

    assert first["lifecycle"] == ABANDONED
    assert second["lifecycle"] == COMPLETED
    assert [r.kind for r in h.reports] == [UNRESOLVED, SUMMARY]
    assert len(h.store.feature_log()) == 1


@pytest.mark.asyncio
async def test_cancel_propagates_when_the_caller_is_cancelled(harness_factory):
    release = asyncio.Event()

    async def blocking_implementer(request):
        await release.wait()
        return _IMPL

    h = harness_factory(fixtures={"planner": _PLAN, "implementer": blocking_implementer})
    request_id = await h.session.submit_request("slow")
    await wait_for_lifecycle(h.session, request_id, "applying")

    canceller = asyncio.create_task(h.session.cancel())
    await asyncio.sleep(0)
    canceller.cancel()

    with pytest.raises(asyncio.CancelledError):
        await canceller
    assert h.session.active_request is None
    assert h.store.current_plan() == []


@pytest.mark.asyncio
async def test_cancel_without_active_request_is_a_no_op(harness_factory):
    h = harness_factory()
    assert await h.session.cancel() is False

    await h.session.run("finish first")
    assert await h.session.cancel() is False


@pytest.mark.asyncio
async def test_finished_request_history_is_bounded(harness_factory, monkeypatch):
    monkeypatch.setattr("orchestrator.session._HISTORY_LIMIT", 2)
    h = harness_factory()

    ids = []
    for n in range(3):
        state = await h.session.run(f"request {n}")
        ids.append(state["request_id"])

    assert list(h.session.results) == ids[1:]
    assert h.session.lifecycle(ids[0]) is None
    assert h.session.lifecycle(ids[2]) == COMPLETED
