"""
Dependency node: runs the installer when the delta touched the manifest.

An install failure becomes the only diagnostic for the next remediation
attempt; no verification pass runs before it.
"""

import logging
from typing import Any

from orchestrator.context import LoopContext
from orchestrator.events import INSTALL, LoopEvent
from orchestrator.state import RequestState

logger = logging.getLogger(__name__)


async def install_dependencies(state: RequestState, ctx: LoopContext) -> dict[str, Any]:
    """LangGraph node: consume the workspace delta through the dependency gate."""
    request_id = state["request_id"]
    events = list(state.get("events", []))
    delta = state.get("delta", [])

    if not ctx.gate.should_install(delta):
        return {"delta": [], "diagnostics": [], "events": events}

    failure = await ctx.gate.run(delta)
    await ctx.emit(events, LoopEvent(
        type=INSTALL,
        message="Dependencies installed" if failure is None else failure.message,
        request_id=request_id,
        attempt=state.get("attempts_made", 0),
        payload={"ok": failure is None},
    ))

    if failure is None:
        return {"delta": [], "diagnostics": [], "events": events}

    logger.warning("Request %s: install failed, entering remediation", request_id)
    return {"delta": [], "diagnostics": [failure], "events": events}
