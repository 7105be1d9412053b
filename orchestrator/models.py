"""
Data model for the orchestration loop.

Status values are plain string constants so every entity stays
JSON/YAML-serialisable and can travel through the LangGraph state untouched.

Ownership:
  - BlueprintDocument belongs to the Blueprint Store for the life of the project
  - PlanStep, DiagnosticEvent and RemediationAttempt are request-scoped
"""

from dataclasses import dataclass, field, asdict, replace
from typing import Any


# --- PlanStep status ---
PENDING = "pending"
APPLIED = "applied"
VERIFIED_OK = "verified_ok"
FAILED = "failed"

STEP_STATUSES = (PENDING, APPLIED, VERIFIED_OK, FAILED)

# Allowed status moves. FAILED -> APPLIED only happens when remediation re-lands an edit.
_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {APPLIED, FAILED},
    APPLIED: {VERIFIED_OK, FAILED},
    FAILED: {APPLIED},
    VERIFIED_OK: set(),
}

# --- PlanStep actions ---
CREATE = "create"
MODIFY = "modify"

# --- DiagnosticEvent source / severity ---
DIAGNOSTICS = "diagnostics"
CONSOLE = "console"
ERROR = "error"
WARNING = "warning"

# --- RemediationAttempt outcome ---
RESOLVED = "resolved"
STILL_FAILING = "still_failing"
GIVEN_UP = "given_up"

# --- Request lifecycle ---
RECEIVED = "received"
PLANNED = "planned"
APPLYING = "applying"
VERIFYING = "verifying"
REMEDIATING = "remediating"
COMPLETED = "completed"
ABANDONED = "abandoned"

TERMINAL_STATES = {COMPLETED, ABANDONED}

# --- ApplyResult error kinds ---
NOT_FOUND = "not_found"
CONFLICT = "conflict"


def can_transition(current: str, new: str) -> bool:
    """Return True if a step may move from `current` to `new`."""
    return current == new or new in _TRANSITIONS.get(current, set())


@dataclass
class PlanStep:
    """One unit of work within the current plan."""
    id: int
    description: str
    target: str = ""
    action: str = MODIFY
    status: str = PENDING

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanStep":
        return cls(
            id=int(data["id"]),
            description=str(data.get("description", "")),
            target=str(data.get("target", "") or ""),
            action=str(data.get("action", MODIFY) or MODIFY),
            status=str(data.get("status", PENDING)),
        )


@dataclass
class FeatureEntry:
    """Historical record of one completed request."""
    summary: str
    changes: list[str] = field(default_factory=list)
    request_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeatureEntry":
        return cls(
            summary=str(data.get("summary", "")),
            changes=[str(c) for c in data.get("changes", []) or []],
            request_id=str(data.get("request_id", "") or ""),
        )


@dataclass
class BlueprintDocument:
    """The project's durable memory: overview, feature history, in-flight plan."""
    overview: str = ""
    feature_log: list[FeatureEntry] = field(default_factory=list)
    current_plan: list[PlanStep] = field(default_factory=list)

    def copy(self) -> "BlueprintDocument":
        return BlueprintDocument(
            overview=self.overview,
            feature_log=[replace(e, changes=list(e.changes)) for e in self.feature_log],
            current_plan=[replace(s) for s in self.current_plan],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "overview": self.overview,
            "feature_log": [e.to_dict() for e in self.feature_log],
            "current_plan": [s.to_dict() for s in self.current_plan],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BlueprintDocument":
        data = data or {}
        return cls(
            overview=str(data.get("overview", "") or ""),
            feature_log=[FeatureEntry.from_dict(e) for e in data.get("feature_log", []) or []],
            current_plan=[PlanStep.from_dict(s) for s in data.get("current_plan", []) or []],
        )


@dataclass(frozen=True)
class Location:
    """File and optional position of a diagnostic, relative to the workspace."""
    path: str
    line: int | None = None
    column: int | None = None

    def __str__(self) -> str:
        text = self.path
        if self.line is not None:
            text += f":{self.line}"
            if self.column is not None:
                text += f":{self.column}"
        return text


@dataclass(frozen=True)
class DiagnosticEvent:
    """A normalized error or warning from the diagnostics source or runtime console."""
    source: str
    severity: str
    message: str
    location: Location | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "severity": self.severity,
            "message": self.message,
            "location": str(self.location) if self.location else None,
        }


@dataclass
class RemediationAttempt:
    """One repair cycle. Discarded once the cycle concludes."""
    attempt_number: int
    triggering_events: list[DiagnosticEvent]
    context: list[DiagnosticEvent] = field(default_factory=list)
    outcome: str = STILL_FAILING


@dataclass
class ApplyResult:
    """Outcome of one mechanical edit. Does not judge behavioural correctness."""
    ok: bool
    path: str = ""
    step_id: int | None = None
    error: str | None = None
    message: str = ""

    def to_event(self) -> DiagnosticEvent:
        """Express a mechanical failure as an error diagnostic for remediation."""
        return DiagnosticEvent(
            source=DIAGNOSTICS,
            severity=ERROR,
            message=f"Edit failed ({self.error}): {self.message}",
            location=Location(self.path) if self.path else None,
        )


def errors_in(events: list[DiagnosticEvent]) -> list[DiagnosticEvent]:
    return [e for e in events if e.is_error]
