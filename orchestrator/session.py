"""
LoopSession: inbound side of the user channel and owner of the active request.

Only one request is ever active. Submitting a new request while another is
running cancels the old asyncio task and waits for it to unwind before the
new request starts, so the Blueprint Store never has two writers. The
cancelled request's plan is discarded; edits that already landed in the
workspace stay (no rollback).
"""

import asyncio
import logging
import uuid
from pathlib import Path

from blueprint.store import BlueprintStore
from framework.user_channel import UserChannel
from llm.router import LLMRouter
from orchestrator.applicator import ChangeApplicator
from orchestrator.config import LoopConfig
from orchestrator.context import LoopContext
from orchestrator.dependency_gate import DependencyGate
from orchestrator.graph import run_request
from orchestrator.models import (
    ABANDONED,
    DIAGNOSTICS,
    ERROR,
    GIVEN_UP,
    RECEIVED,
    TERMINAL_STATES,
    DiagnosticEvent,
)
from orchestrator.monitor import DiagnosticMonitor
from orchestrator.planner import PlanGenerator
from orchestrator.remediation import RemediationEngine
from orchestrator.state import RequestState, make_initial_state
from sandbox.base import SignalSource
from sandbox.runtime_console import RuntimeConsole
from sandbox.static_checker import StaticDiagnostics
from workspace.base import Installer, Workspace
from workspace.installer import PipInstaller
from workspace.local import LocalWorkspace

logger = logging.getLogger(__name__)

_HISTORY_LIMIT = 32  # finished requests kept for lifecycle() and results lookups


class LoopSession:

    def __init__(
        self,
        store: BlueprintStore,
        workspace: Workspace,
        installer: Installer,
        sources: list[SignalSource],
        channel: UserChannel | None = None,
        router: LLMRouter | None = None,
        config: LoopConfig | None = None,
    ) -> None:
        self.config = config or LoopConfig()
        self.channel = channel or UserChannel()
        router = router or LLMRouter()
        applicator = ChangeApplicator(workspace, router)
        self.ctx = LoopContext(
            store=store,
            planner=PlanGenerator(router),
            applicator=applicator,
            gate=DependencyGate(workspace, installer),
            monitor=DiagnosticMonitor(
                sources,
                root=workspace.root,
                quiescence_window=self.config.quiescence_window,
                collect_timeout=self.config.collect_timeout,
                error_policy=self.config.error_policy,
            ),
            remediation=RemediationEngine(applicator, router, self.config.max_attempts),
            channel=self.channel,
        )
        self._task: asyncio.Task | None = None
        self._active_id: str | None = None
        self.results: dict[str, RequestState] = {}

    @property
    def store(self) -> BlueprintStore:
        return self.ctx.store

    @property
    def active_request(self) -> str | None:
        if self._task is None or self._task.done():
            return None
        return self._active_id

    def lifecycle(self, request_id: str) -> str | None:
        return self.ctx.lifecycles.get(request_id)

    async def submit_request(self, text: str) -> str:
        """Start processing `text`, cancelling any in-flight request first."""
        await self.cancel()

        request_id = uuid.uuid4().hex[:12]
        self.ctx.lifecycles[request_id] = RECEIVED
        self._active_id = request_id
        self._task = asyncio.create_task(self._run(request_id, text), name=f"request-{request_id}")
        logger.info("Request %s submitted", request_id)
        return request_id

    async def run(self, text: str) -> RequestState:
        """Submit `text` and wait for it to finish."""
        request_id = await self.submit_request(text)
        await self.wait()
        return self.results[request_id]

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    async def cancel(self) -> bool:
        """Cancel the in-flight request, if any, and relinquish its plan."""
        task, request_id = self._task, self._active_id
        if task is None:
            return False
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.error("Request %s had failed: %r", request_id, task.exception())
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            caller = asyncio.current_task()
            if caller is not None and caller.cancelling():
                raise
        finally:
            # Stale plan is discarded, not kept as history
            self.store.clear_current_plan()
            self._prune_history()
        logger.info("Request %s cancelled (was %s)", request_id, self.lifecycle(request_id))
        return True

    async def _run(self, request_id: str, text: str) -> None:
        try:
            state = await run_request(self.ctx, request_id, text)
        except Exception as exc:
            state = await self._abandon(request_id, text, exc)

        self.results[request_id] = state
        if state["lifecycle"] not in TERMINAL_STATES and not state.get("clarification"):
            logger.warning("Request %s ended in non-terminal state %s", request_id, state["lifecycle"])
        self._prune_history()

    async def _abandon(self, request_id: str, text: str, exc: Exception) -> RequestState:
        """Fatal to this request only: drop the plan and report the failure once."""
        logger.error("Request %s abandoned: %s: %s", request_id, type(exc).__name__, exc)
        attempts_made = self.ctx.attempts.get(request_id, 0)
        self.store.clear_current_plan()
        self.ctx.lifecycles[request_id] = ABANDONED

        reason = f"{type(exc).__name__}: {exc}"
        event = DiagnosticEvent(source=DIAGNOSTICS, severity=ERROR, message=reason)
        await self.channel.report_unresolved(request_id, [event], attempts_made)

        state = make_initial_state(request_id, text)
        state.update(
            lifecycle=ABANDONED,
            attempts_made=attempts_made,
            remediation_outcome=GIVEN_UP,
            diagnostics=[event],
            give_up_reason=reason,
        )
        return state

    def _prune_history(self) -> None:
        finished = [rid for rid in self.ctx.lifecycles if rid in self.results or rid != self._active_id]
        for request_id in finished[:max(0, len(finished) - _HISTORY_LIMIT)]:
            self.ctx.forget(request_id)
            self.results.pop(request_id, None)


def build_session(
    workspace_root: str | Path,
    config: LoopConfig | None = None,
    router: LLMRouter | None = None,
    channel: UserChannel | None = None,
) -> LoopSession:
    """Wire the default filesystem collaborators for a project directory."""
    config = config or LoopConfig()
    root = Path(workspace_root).resolve()
    workspace = LocalWorkspace(root, manifest_names=config.manifest_names)

    sources: list[SignalSource] = [StaticDiagnostics(root)]
    if config.entry_command:
        sources.append(RuntimeConsole(root, config.entry_command, timeout=config.console_timeout))

    return LoopSession(
        store=BlueprintStore(root / config.blueprint_path),
        workspace=workspace,
        installer=PipInstaller(root, timeout=config.install_timeout),
        sources=sources,
        channel=channel,
        router=router,
        config=config,
    )
