"""
Plan Generator: turns a user request into an ordered, revisable step list.

The planner asks the model for steps but never silently guesses: a blank
request, or a reply with no concrete step, raises AmbiguousRequestError
carrying the question to send back to the user.
"""

import logging
from dataclasses import dataclass

from llm.router import LLMRouter
from orchestrator.errors import AmbiguousRequestError
from orchestrator.models import CREATE, MODIFY, FeatureEntry, PlanStep

logger = logging.getLogger(__name__)

_MAX_HISTORY_ENTRIES = 10  # most recent feature entries shown to the planner


@dataclass
class PlanDraft:
    steps: list[PlanStep]
    summary: str = ""
    # Revised overview, or "" when the change does not alter it
    overview: str = ""


class PlanGenerator:

    def __init__(self, router: LLMRouter) -> None:
        self._router = router

    async def generate_plan(
        self,
        request: str,
        current_overview: str,
        feature_log: list[FeatureEntry],
    ) -> PlanDraft:
        if not request or not request.strip():
            raise AmbiguousRequestError(
                "Empty request",
                question="What change would you like me to make?",
            )

        result = await self._router.call(
            role="planner",
            template_key="plan",
            variables={
                "request": request.strip(),
                "overview": current_overview or "No overview recorded yet.",
                "feature_log": _format_feature_log(feature_log),
            },
        )

        steps = []
        for raw in result.get("steps", []):
            description = str(raw.get("description", "")).strip()
            if not description:
                continue
            action = raw.get("action") or MODIFY
            steps.append(PlanStep(
                id=len(steps) + 1,
                description=description,
                target=str(raw.get("target", "") or "").strip(),
                action=action if action in (CREATE, MODIFY) else MODIFY,
            ))

        if not steps:
            question = str(result.get("clarification", "") or "").strip()
            raise AmbiguousRequestError("Planner produced no concrete step", question=question)

        logger.info("Planner produced %d steps", len(steps))
        return PlanDraft(
            steps=steps,
            summary=str(result.get("summary", "") or "").strip() or request.strip(),
            overview=str(result.get("overview", "") or "").strip(),
        )


def _format_feature_log(entries: list[FeatureEntry]) -> str:
    if not entries:
        return "No features recorded yet."
    recent = entries[-_MAX_HISTORY_ENTRIES:]
    return "\n".join(f"- {e.summary}" for e in recent)


def format_plan(steps: list[PlanStep]) -> str:
    return "\n".join(
        f"{s.id}. [{s.status}] {s.description} ({s.action} {s.target or '?'})" for s in steps
    )
