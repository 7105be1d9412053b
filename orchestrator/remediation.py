"""
Remediation Engine: diagnose, repair, and bound the number of attempts.

Per request:
  diagnosing -> repairing -> reverifying -> {resolved, still_failing}
  still_failing loops to diagnosing until max_attempts is spent, then given_up

Diagnosing groups error events by proximate cause (same file + same error
kind) into fix targets. Errors without a location are only actionable when
they match a known pattern; otherwise NoActionableCauseError sends the
request straight to given_up without spending an attempt.

The engine does not write files itself; corrective edits go through the
Change Applicator so they obey the same mechanical-failure rules.
"""

import logging
import re
from dataclasses import dataclass, field

from llm.router import LLMRouter
from orchestrator.applicator import ChangeApplicator
from orchestrator.dependency_gate import INSTALL_FAILURE_PREFIX
from orchestrator.errors import NoActionableCauseError
from orchestrator.models import (
    RESOLVED,
    STILL_FAILING,
    ApplyResult,
    DiagnosticEvent,
    RemediationAttempt,
    errors_in,
)

logger = logging.getLogger(__name__)

# Locationless errors that still point at a fixable file: the dependency manifest
_MANIFEST_PATTERNS = (
    re.compile(r"\bModuleNotFoundError\b"),
    re.compile(r"\bNo module named\b"),
    re.compile(r"\bImportError\b"),
    re.compile(r"^" + re.escape(INSTALL_FAILURE_PREFIX)),
)
_KIND_RE = re.compile(r"^\s*(?:Edit failed \((\w+)\)|(\w+(?:Error|Exception|Warning)))")


@dataclass
class FixTarget:
    """Events sharing one proximate cause, fixed by one corrective edit."""
    path: str
    kind: str
    events: list[DiagnosticEvent]
    context: list[DiagnosticEvent] = field(default_factory=list)


def error_kind(message: str) -> str:
    match = _KIND_RE.match(message)
    if not match:
        return "error"
    return match.group(1) or match.group(2)


class RemediationEngine:

    def __init__(
        self,
        applicator: ChangeApplicator,
        router: LLMRouter,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._applicator = applicator
        self._router = router
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def budget_exhausted(self, attempts_made: int) -> bool:
        return attempts_made >= self._max_attempts

    def conclude(self, attempt: RemediationAttempt, readings: list[DiagnosticEvent]) -> str:
        """Record the reverification verdict on `attempt` and return it."""
        attempt.outcome = STILL_FAILING if errors_in(readings) else RESOLVED
        logger.info(
            "Attempt %d (%d triggering errors, %d warnings) -> %s",
            attempt.attempt_number,
            len(attempt.triggering_events),
            len(attempt.context),
            attempt.outcome,
        )
        return attempt.outcome

    def _manifest_path(self) -> str | None:
        workspace = self._applicator.workspace
        manifest = workspace.read_manifest()
        if manifest is not None:
            return manifest.path
        names = workspace.manifest_names
        return names[0] if names else None

    def diagnose(self, events: list[DiagnosticEvent], attempt_number: int) -> tuple[RemediationAttempt, list[FixTarget]]:
        """
        Group errors into fix targets for the given attempt.

        Raises NoActionableCauseError when any error carries no location and
        matches no known pattern.
        """
        errors = errors_in(events)
        warnings = [e for e in events if not e.is_error]

        groups: dict[tuple[str, str], FixTarget] = {}
        for event in errors:
            if event.location is not None:
                path = event.location.path
            elif any(p.search(event.message) for p in _MANIFEST_PATTERNS):
                path = self._manifest_path()
                if path is None:
                    raise NoActionableCauseError(
                        f"Dependency problem but the workspace has no manifest: {event.message}",
                        events=[event],
                    )
            else:
                raise NoActionableCauseError(
                    f"No location or recognisable cause for: {event.message}",
                    events=[event],
                )
            kind = error_kind(event.message)
            target = groups.setdefault((path, kind), FixTarget(path=path, kind=kind, events=[]))
            target.events.append(event)

        attempt_context = []
        for warning in warnings:
            matched = False
            for target in groups.values():
                if warning.location is not None and warning.location.path == target.path:
                    target.context.append(warning)
                    matched = True
            if not matched:
                attempt_context.append(warning)

        attempt = RemediationAttempt(
            attempt_number=attempt_number,
            triggering_events=errors,
            context=warnings,
        )
        targets = list(groups.values())
        for target in targets:
            target.context.extend(attempt_context)
        logger.info(
            "Attempt %d: %d errors grouped into %d fix targets",
            attempt_number,
            len(errors),
            len(targets),
        )
        return attempt, targets

    async def repair(
        self,
        targets: list[FixTarget],
        attempt_number: int,
        request: str = "",
        plan: str = "",
    ) -> list[ApplyResult]:
        """
        Apply one corrective edit per fix target, in order.

        Stops at the first mechanical failure; the failed result is the last
        element of the returned list.
        """
        workspace = self._applicator.workspace
        results: list[ApplyResult] = []

        for target in targets:
            location = workspace.resolve_target(target.path, create=True)
            digest = workspace.digest(location) if location is not None else None
            current = workspace.read_text(location) if location is not None else ""

            response = await self._router.call(
                role="repairer",
                template_key="repair",
                variables={
                    "request": request,
                    "plan": plan,
                    "attempt": attempt_number,
                    "max_attempts": self._max_attempts,
                    "diagnostics": format_events(target.events + target.context),
                    "path": target.path,
                    "file_content": current or "(file does not exist)",
                },
            )

            result = await self._applicator.apply_edit(
                target.path, response["content"], expected_digest=digest
            )
            results.append(result)
            if not result.ok:
                logger.warning("Repair edit for %s failed: %s", target.path, result.message)
                break
        return results


def format_events(events: list[DiagnosticEvent]) -> str:
    if not events:
        return "No diagnostics."
    lines = []
    for event in events:
        where = f" at {event.location}" if event.location else ""
        lines.append(f"- [{event.severity}/{event.source}]{where}: {event.message}")
    return "\n".join(lines)
