"""
Applying node: lands pending plan steps strictly in declared order.

A step is attempted only when every earlier step is applied or verified.
The first mechanical failure marks that step failed and halts the phase;
later steps stay pending until remediation re-lands the failed one.
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.events import step_event
from orchestrator.models import APPLIED, APPLYING, FAILED, PENDING
from orchestrator.planner import format_plan
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def apply_changes(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: apply every pending step until one fails mechanically."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    delta = list(state.get("delta", []))
    failures = dict(state.get("step_failures", {}))

    # Resuming after a repair keeps the request in remediation
    lifecycle = state["lifecycle"]
    if state.get("attempts_made", 0) == 0:
        lifecycle = await ctx.transition(state, events, APPLYING)

    plan = ctx.store.current_plan()
    plan_text = format_plan(plan)

    for step in plan:
        if step.status == FAILED:
            break
        if step.status != PENDING:
            continue

        result = await ctx.applicator.apply(step, request=state["request"], plan=plan_text)
        if result.ok:
            ctx.store.update_step_status(step.id, APPLIED)
            if result.path not in delta:
                delta.append(result.path)
            await ctx.emit(events, step_event(request_id, step, ok=True))
            continue

        ctx.store.update_step_status(step.id, FAILED)
        failures[step.id] = result.to_event()
        logger.warning("Step %d failed mechanically: %s", step.id, result.message)
        await ctx.emit(events, step_event(request_id, step, ok=False, detail=result.message))
        break

    diagnostics = list(failures.values())
    return {
        "lifecycle": lifecycle,
        "delta": delta,
        "step_failures": failures,
        "diagnostics": diagnostics,
        "events": events,
    }
