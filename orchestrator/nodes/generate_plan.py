"""
Planning node: request in, current plan out.

An ambiguous request never reaches the store: the user gets a clarifying
question and the request stays `received`.
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.errors import AmbiguousRequestError
from orchestrator.events import CLARIFICATION, LoopEvent, plan_event
from orchestrator.models import PLANNED, RECEIVED
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def generate_plan(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: produce and persist the plan for this request."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    await ctx.transition(state, events, RECEIVED)

    try:
        draft = await ctx.planner.generate_plan(
            state["request"],
            ctx.store.read_overview(),
            ctx.store.feature_log(),
        )
    except AmbiguousRequestError as exc:
        logger.info("Request %s needs clarification: %s", request_id, exc)
        await ctx.emit(events, LoopEvent(
            type=CLARIFICATION,
            message=exc.question,
            request_id=request_id,
        ))
        await ctx.channel.report_clarification_needed(request_id, exc.question)
        return {"lifecycle": RECEIVED, "clarification": exc.question, "events": events}

    ctx.store.replace_current_plan(draft.steps)
    await ctx.emit(events, plan_event(request_id, draft.steps))
    lifecycle = await ctx.transition(state, events, PLANNED)

    return {
        "lifecycle": lifecycle,
        "plan_summary": draft.summary,
        "proposed_overview": draft.overview,
        "events": events,
    }
