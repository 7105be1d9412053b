"""
Change Applicator: lands one plan step's edit in the workspace.

It judges only whether an edit mechanically landed:
  - not_found: a modify target is missing or lies outside the workspace
  - conflict:  the file changed between being read and being written
It never judges whether the resulting code behaves correctly; that is the
Diagnostic Monitor's job.
"""

import logging

from llm.router import LLMRouter
from orchestrator.models import (
    CONFLICT,
    CREATE,
    NOT_FOUND,
    ApplyResult,
    PlanStep,
)
from workspace.base import CONFLICT as WRITE_CONFLICT
from workspace.base import Workspace

logger = logging.getLogger(__name__)


class ChangeApplicator:

    def __init__(self, workspace: Workspace, router: LLMRouter) -> None:
        self._workspace = workspace
        self._router = router

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    async def apply(self, step: PlanStep, request: str = "", plan: str = "") -> ApplyResult:
        """Synthesize and write the edit for `step`."""
        location = self._workspace.resolve_target(step.target, create=step.action == CREATE)
        if location is None:
            logger.info("Step %d: target %r not found", step.id, step.target)
            return ApplyResult(
                ok=False,
                path=step.target,
                step_id=step.id,
                error=NOT_FOUND,
                message=f"Target {step.target or '<none>'} does not exist in the workspace",
            )

        digest = self._workspace.digest(location)
        current = self._workspace.read_text(location)

        result = await self._router.call(
            role="implementer",
            template_key="apply",
            variables={
                "request": request,
                "plan": plan,
                "step": step.description,
                "target": step.target,
                "action": step.action,
                "file_content": current or "(file does not exist yet)",
            },
        )

        outcome = await self.apply_edit(step.target, result["content"], expected_digest=digest)
        outcome.step_id = step.id
        return outcome

    async def apply_edit(
        self,
        path: str,
        content: str,
        expected_digest: str | None = None,
        create: bool = True,
    ) -> ApplyResult:
        """Write `content` to `path` under the same mechanical rules as a plan step."""
        location = self._workspace.resolve_target(path, create=create)
        if location is None:
            return ApplyResult(
                ok=False,
                path=path,
                error=NOT_FOUND,
                message=f"Target {path or '<none>'} cannot be resolved",
            )

        if self._workspace.write_edit(location, content, expected_digest) == WRITE_CONFLICT:
            return ApplyResult(
                ok=False,
                path=path,
                error=CONFLICT,
                message=f"{path} changed while the edit was being prepared",
            )

        logger.info("Applied edit to %s (%d chars)", path, len(content))
        return ApplyResult(ok=True, path=self._workspace.relative(location))
