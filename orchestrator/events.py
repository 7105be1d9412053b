"""
Progress events emitted while a request moves through the loop.

Events are appended to RequestState.events and published on the user
channel as they happen. Event types are string constants to keep them
JSON-serializable.
"""

from dataclasses import dataclass, field, asdict
from typing import Any
import time

from orchestrator.models import DiagnosticEvent, PlanStep


# --- Event type constants ---
LIFECYCLE = "lifecycle"
PLAN_GENERATED = "plan_generated"
STEP_APPLIED = "step_applied"
STEP_FAILED = "step_failed"
INSTALL = "install"
VERIFICATION = "verification"
DIAGNOSIS = "diagnosis"
REPAIR = "repair"
CLARIFICATION = "clarification"
COMPLETED = "completed"
ABANDONED = "abandoned"


@dataclass
class LoopEvent:
    type: str
    message: str
    request_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    attempt: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def lifecycle_event(request_id: str, state: str, attempt: int = 0) -> LoopEvent:
    return LoopEvent(
        type=LIFECYCLE,
        message=f"Request is {state}",
        request_id=request_id,
        attempt=attempt,
        payload={"state": state},
    )


def plan_event(request_id: str, steps: list[PlanStep]) -> LoopEvent:
    return LoopEvent(
        type=PLAN_GENERATED,
        message=f"Plan with {len(steps)} steps",
        request_id=request_id,
        payload={"steps": [s.to_dict() for s in steps]},
    )


def step_event(request_id: str, step: PlanStep, ok: bool, detail: str = "") -> LoopEvent:
    return LoopEvent(
        type=STEP_APPLIED if ok else STEP_FAILED,
        message=f"Step {step.id} {'applied' if ok else 'failed'}: {step.description}",
        request_id=request_id,
        payload={"step_id": step.id, "target": step.target, "detail": detail},
    )


def verification_event(request_id: str, events: list[DiagnosticEvent], attempt: int = 0) -> LoopEvent:
    errors = sum(1 for e in events if e.is_error)
    return LoopEvent(
        type=VERIFICATION,
        message=f"Verification: {errors} errors, {len(events) - errors} warnings",
        request_id=request_id,
        attempt=attempt,
        payload={"errors": errors, "events": [e.to_dict() for e in events]},
    )


def diagnosis_event(request_id: str, attempt: int, targets: list[str]) -> LoopEvent:
    return LoopEvent(
        type=DIAGNOSIS,
        message=f"Attempt {attempt}: {len(targets)} fix targets",
        request_id=request_id,
        attempt=attempt,
        payload={"targets": targets},
    )


def repair_event(request_id: str, attempt: int, path: str, ok: bool) -> LoopEvent:
    return LoopEvent(
        type=REPAIR,
        message=f"Repair of {path} {'applied' if ok else 'failed'}",
        request_id=request_id,
        attempt=attempt,
        payload={"path": path, "ok": ok},
    )
