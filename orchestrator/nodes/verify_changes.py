"""
Verification node: one Diagnostic Monitor reading per pass.

Outstanding mechanical step failures are folded into the reading so a plan
with a failed step can never verify clean.
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.events import verification_event
from orchestrator.models import VERIFYING, errors_in
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def verify_changes(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: collect diagnostics and record the pass verdict."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    attempts_made = state.get("attempts_made", 0)

    lifecycle = await ctx.transition(state, events, VERIFYING)

    readings = await ctx.monitor.collect()
    readings.extend(state.get("step_failures", {}).values())
    await ctx.emit(events, verification_event(request_id, readings, attempt=attempts_made))

    failed = bool(errors_in(readings))
    outcome = state.get("remediation_outcome", "")
    attempt = state.get("attempt")
    if attempt is not None:
        outcome = ctx.remediation.conclude(attempt, readings)

    logger.info(
        "Request %s verification %s (attempts=%d)",
        request_id,
        "failed" if failed else "passed",
        attempts_made,
    )
    return {
        "lifecycle": lifecycle,
        "diagnostics": readings,
        "remediation_outcome": outcome,
        "attempt": None,
        "events": events,
    }
