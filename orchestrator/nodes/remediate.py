"""
Remediation nodes: diagnosing and repairing.

The attempt counter is only incremented once diagnosis succeeds, so a
NoActionableCauseError gives up without spending an attempt.
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.errors import NoActionableCauseError
from orchestrator.events import diagnosis_event, repair_event
from orchestrator.models import APPLIED, FAILED, GIVEN_UP, REMEDIATING
from orchestrator.planner import format_plan
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def diagnose_failure(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: group the latest errors into fix targets."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    lifecycle = await ctx.transition(state, events, REMEDIATING)
    attempt_number = state.get("attempts_made", 0) + 1

    # Reached without a verification pass (mechanical or install failure)
    previous = state.get("attempt")
    if previous is not None:
        ctx.remediation.conclude(previous, state.get("diagnostics", []))

    try:
        attempt, targets = ctx.remediation.diagnose(state.get("diagnostics", []), attempt_number)
    except NoActionableCauseError as exc:
        logger.warning("Request %s: %s", request_id, exc)
        return {
            "lifecycle": lifecycle,
            "remediation_outcome": GIVEN_UP,
            "give_up_reason": str(exc),
            "attempt": None,
            "fix_targets": [],
            "events": events,
        }

    ctx.attempts[request_id] = attempt.attempt_number
    await ctx.emit(events, diagnosis_event(
        request_id,
        attempt.attempt_number,
        [f"{t.path} ({t.kind})" for t in targets],
    ))
    return {
        "lifecycle": lifecycle,
        "attempts_made": attempt.attempt_number,
        "remediation_outcome": attempt.outcome,
        "attempt": attempt,
        "fix_targets": targets,
        "events": events,
    }


async def repair_changes(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: land one corrective edit per fix target."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    attempt = state["attempt"]
    attempt_number = attempt.attempt_number
    delta = list(state.get("delta", []))
    failures = dict(state.get("step_failures", {}))

    results = await ctx.remediation.repair(
        state.get("fix_targets", []),
        attempt_number,
        request=state["request"],
        plan=format_plan(ctx.store.current_plan()),
    )

    repaired_paths = set()
    for result in results:
        await ctx.emit(events, repair_event(request_id, attempt_number, result.path, result.ok))
        if result.ok:
            repaired_paths.add(result.path)
            if result.path not in delta:
                delta.append(result.path)

    # A re-landed edit on a failed step's target counts as applying that step
    workspace = ctx.applicator.workspace
    for step in ctx.store.current_plan():
        if step.status != FAILED:
            continue
        location = workspace.resolve_target(step.target, create=True)
        if location is not None and workspace.relative(location) in repaired_paths:
            ctx.store.update_step_status(step.id, APPLIED)
            failures.pop(step.id, None)

    update: dict[str, Any] = {
        "delta": delta,
        "step_failures": failures,
        "fix_targets": [],
        "diagnostics": [],
        "events": events,
    }
    if results and not results[-1].ok:
        update["diagnostics"] = [results[-1].to_event()] + list(failures.values())
        update["remediation_outcome"] = ctx.remediation.conclude(attempt, update["diagnostics"])
        update["attempt"] = None
    return update
