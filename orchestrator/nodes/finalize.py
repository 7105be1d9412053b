"""
Terminal nodes. Each terminal state produces exactly one report.

completed: every applied step becomes verified_ok, one FeatureEntry is
           appended, the plan is cleared, the summary is reported
abandoned: no further edits, the plan is cleared, the unresolved errors and
           the attempt count are reported; the feature log is untouched
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.events import ABANDONED as ABANDONED_EVENT
from orchestrator.events import COMPLETED as COMPLETED_EVENT
from orchestrator.events import LoopEvent
from orchestrator.models import (
    ABANDONED,
    APPLIED,
    COMPLETED,
    DIAGNOSTICS,
    ERROR,
    GIVEN_UP,
    VERIFIED_OK,
    DiagnosticEvent,
    FeatureEntry,
    errors_in,
)
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def complete_request(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: record the verified change in the blueprint history."""
    request_id = state["request_id"]
    events = list(state.get("events", []))

    for step in ctx.store.current_plan():
        if step.status == APPLIED:
            ctx.store.update_step_status(step.id, VERIFIED_OK)
    plan = ctx.store.current_plan()

    entry = FeatureEntry(
        summary=state.get("plan_summary") or state["request"],
        changes=[s.description for s in plan],
        request_id=request_id,
    )
    ctx.store.append_feature_entry(entry)
    if state.get("proposed_overview"):
        ctx.store.write_overview(state["proposed_overview"])
    ctx.store.clear_current_plan()

    lifecycle = await ctx.transition(state, events, COMPLETED)
    await ctx.emit(events, LoopEvent(
        type=COMPLETED_EVENT,
        message=f"Completed: {entry.summary}",
        request_id=request_id,
        attempt=state.get("attempts_made", 0),
        payload={"feature_entry": entry.to_dict()},
    ))
    await ctx.channel.report_summary(request_id, entry)
    logger.info(
        "Request %s completed after %d remediation attempts",
        request_id,
        state.get("attempts_made", 0),
    )
    return {
        "lifecycle": lifecycle,
        "final_plan": [s.to_dict() for s in plan],
        "events": events,
    }


async def abandon_request(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: stop editing and report what is still broken."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    attempts_made = state.get("attempts_made", 0)

    unresolved = errors_in(state.get("diagnostics", []))
    if not unresolved:
        unresolved = [DiagnosticEvent(
            source=DIAGNOSTICS,
            severity=ERROR,
            message=state.get("give_up_reason") or "Remediation gave up without a diagnosis",
        )]

    plan = ctx.store.current_plan()
    ctx.store.clear_current_plan()
    lifecycle = await ctx.transition(state, events, ABANDONED)
    await ctx.emit(events, LoopEvent(
        type=ABANDONED_EVENT,
        message=f"Abandoned after {attempts_made} attempts with {len(unresolved)} unresolved errors",
        request_id=request_id,
        attempt=attempts_made,
        payload={"events": [e.to_dict() for e in unresolved]},
    ))
    await ctx.channel.report_unresolved(request_id, unresolved, attempts_made)
    logger.warning(
        "Request %s abandoned: %d unresolved errors after %d attempts",
        request_id,
        len(unresolved),
        attempts_made,
    )
    return {
        "lifecycle": lifecycle,
        "remediation_outcome": GIVEN_UP,
        "final_plan": [s.to_dict() for s in plan],
        "events": events,
    }
