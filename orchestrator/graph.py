"""
LangGraph state machine for one request.

Graph topology:
  generate_plan
       ↓ (ambiguous) ─────────────────────────→ END   (stays received)
  apply_changes
       ↓ (mechanical failure) ──→ remediation route
  install_dependencies
       ↓ (install failure) ─────→ remediation route
  verify_changes
       ↓ (no errors) ───────────→ complete_request → END
       ↓ (errors) ──────────────→ remediation route

  remediation route:
       attempts left  → diagnose_failure
       budget spent   → abandon_request → END

  diagnose_failure
       ↓ (no actionable cause) ─→ abandon_request
  repair_changes
       ↓ (mechanical failure) ──→ remediation route
  apply_changes  (resumes pending steps, then gate and reverify)

Nodes accept state + LoopContext; the context is bound with
functools.partial before nodes are added to the graph.
"""

import functools
import logging
from typing import Any, AsyncGenerator, Literal

from langgraph.graph import END, StateGraph

from orchestrator.context import LoopContext
from orchestrator.models import GIVEN_UP, errors_in
from orchestrator.nodes.apply_changes import apply_changes
from orchestrator.nodes.finalize import abandon_request, complete_request
from orchestrator.nodes.generate_plan import generate_plan
from orchestrator.nodes.install_dependencies import install_dependencies
from orchestrator.nodes.remediate import diagnose_failure, repair_changes
from orchestrator.nodes.verify_changes import verify_changes
from orchestrator.state import RequestState, make_initial_state

logger = logging.getLogger(__name__)

_BASE_STEPS = 12
_STEPS_PER_ATTEMPT = 6


def _remediation_route(state: RequestState, ctx: LoopContext) -> Literal["diagnose_failure", "abandon_request"]:
    if ctx.remediation.budget_exhausted(state.get("attempts_made", 0)):
        logger.warning(
            "Request %s: attempt budget (%d) exhausted",
            state["request_id"],
            ctx.remediation.max_attempts,
        )
        return "abandon_request"
    return "diagnose_failure"


def _route_after_plan(state: RequestState) -> Literal["apply_changes", "__end__"]:
    if state.get("clarification"):
        return "__end__"
    return "apply_changes"


def _route_after_apply(state: RequestState, ctx: LoopContext) -> str:
    if state.get("step_failures"):
        return _remediation_route(state, ctx)
    return "install_dependencies"


def _route_after_install(state: RequestState, ctx: LoopContext) -> str:
    if errors_in(state.get("diagnostics", [])):
        return _remediation_route(state, ctx)
    return "verify_changes"


def _route_after_verify(state: RequestState, ctx: LoopContext) -> str:
    if errors_in(state.get("diagnostics", [])):
        return _remediation_route(state, ctx)
    return "complete_request"


def _route_after_diagnose(state: RequestState) -> Literal["repair_changes", "abandon_request"]:
    if state.get("remediation_outcome") == GIVEN_UP:
        return "abandon_request"
    return "repair_changes"


def _route_after_repair(state: RequestState, ctx: LoopContext) -> str:
    if errors_in(state.get("diagnostics", [])):
        return _remediation_route(state, ctx)
    return "apply_changes"


_REMEDIATION_TARGETS = {
    "diagnose_failure": "diagnose_failure",
    "abandon_request": "abandon_request",
}


def build_graph(ctx: LoopContext):
    """Construct and compile the request state graph."""
    graph = StateGraph(RequestState)

    graph.add_node("generate_plan", functools.partial(generate_plan, ctx=ctx))
    graph.add_node("apply_changes", functools.partial(apply_changes, ctx=ctx))
    graph.add_node("install_dependencies", functools.partial(install_dependencies, ctx=ctx))
    graph.add_node("verify_changes", functools.partial(verify_changes, ctx=ctx))
    graph.add_node("diagnose_failure", functools.partial(diagnose_failure, ctx=ctx))
    graph.add_node("repair_changes", functools.partial(repair_changes, ctx=ctx))
    graph.add_node("complete_request", functools.partial(complete_request, ctx=ctx))
    graph.add_node("abandon_request", functools.partial(abandon_request, ctx=ctx))

    graph.set_entry_point("generate_plan")

    graph.add_conditional_edges(
        "generate_plan",
        _route_after_plan,
        {"apply_changes": "apply_changes", "__end__": END},
    )
    graph.add_conditional_edges(
        "apply_changes",
        functools.partial(_route_after_apply, ctx=ctx),
        {"install_dependencies": "install_dependencies", **_REMEDIATION_TARGETS},
    )
    graph.add_conditional_edges(
        "install_dependencies",
        functools.partial(_route_after_install, ctx=ctx),
        {"verify_changes": "verify_changes", **_REMEDIATION_TARGETS},
    )
    graph.add_conditional_edges(
        "verify_changes",
        functools.partial(_route_after_verify, ctx=ctx),
        {"complete_request": "complete_request", **_REMEDIATION_TARGETS},
    )
    graph.add_conditional_edges(
        "diagnose_failure",
        _route_after_diagnose,
        {"repair_changes": "repair_changes", "abandon_request": "abandon_request"},
    )
    graph.add_conditional_edges(
        "repair_changes",
        functools.partial(_route_after_repair, ctx=ctx),
        {"apply_changes": "apply_changes", **_REMEDIATION_TARGETS},
    )
    graph.add_edge("complete_request", END)
    graph.add_edge("abandon_request", END)

    return graph.compile()


def _run_config(max_attempts: int) -> dict[str, Any]:
    # Every attempt revisits at most diagnose, repair, apply, install, verify
    return {"recursion_limit": _BASE_STEPS + _STEPS_PER_ATTEMPT * max_attempts}


async def run_request(
    ctx: LoopContext,
    request_id: str,
    request: str,
) -> RequestState:
    """Run one request to a terminal (or clarification) state and return the final state."""
    app = build_graph(ctx)
    initial_state = make_initial_state(request_id, request)
    return await app.ainvoke(initial_state, config=_run_config(ctx.remediation.max_attempts))


async def stream_request(
    ctx: LoopContext,
    request_id: str,
    request: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """
    Yield progress events as each node completes.

    Each node returns the full accumulated events list in its state slice,
    so only the unseen tail is yielded.
    """
    app = build_graph(ctx)
    initial_state = make_initial_state(request_id, request)
    total_seen = 0

    async for state_update in app.astream(initial_state, config=_run_config(ctx.remediation.max_attempts)):
        for node_state in state_update.values():
            if not isinstance(node_state, dict):
                continue
            events = node_state.get("events", [])
            new_events = events[total_seen:]
            total_seen = max(total_seen, len(events))
            for event in new_events:
                yield event
