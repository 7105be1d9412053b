"""
LangGraph state definition for one request.

State is a TypedDict; each node returns a partial dict that is merged in.
The plan itself is NOT kept here: the Blueprint Store's current_plan is the
single source of truth and nodes read it back from the store.

Design decisions:
  - `delta` accumulates workspace paths touched since the dependency gate
    last ran, so repairs to the manifest also trigger an install
  - `step_failures` holds one mechanical-failure diagnostic per failed plan
    step; it is only cleared when remediation re-lands that step's target
  - `diagnostics` is the latest verification reading (or synthesized
    failures) and is what the next remediation attempt works on
"""

from typing import Any, TypedDict

from orchestrator.models import DiagnosticEvent


class RequestState(TypedDict):
    # --- Request context (set once at graph entry) ---
    request_id: str
    request: str

    # --- Lifecycle: received | planned | applying | verifying | remediating | completed | abandoned ---
    lifecycle: str

    # --- Planner output kept for the feature log ---
    plan_summary: str
    proposed_overview: str
    clarification: str

    # --- Applying ---
    delta: list[str]
    step_failures: dict[int, DiagnosticEvent]

    # --- Verification / remediation ---
    diagnostics: list[DiagnosticEvent]
    attempts_made: int
    # resolved | still_failing | given_up | "" before any attempt
    remediation_outcome: str
    # RemediationAttempt in progress; None once its verdict is recorded
    attempt: Any
    fix_targets: list[Any]
    give_up_reason: str

    # --- Plan as it stood when the request reached a terminal state ---
    final_plan: list[dict[str, Any]]

    # --- Event stream (appended by each node) ---
    events: list[dict[str, Any]]


def make_initial_state(request_id: str, request: str) -> RequestState:
    return RequestState(
        request_id=request_id,
        request=request,
        lifecycle="received",
        plan_summary="",
        proposed_overview="",
        clarification="",
        delta=[],
        step_failures={},
        diagnostics=[],
        attempts_made=0,
        remediation_outcome="",
        attempt=None,
        fix_targets=[],
        give_up_reason="",
        final_plan=[],
        events=[],
    )
