"""
Shared test doubles: scripted signal sources, a scripted installer and a
session factory wired to a tmp_path workspace with the Mock provider.
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from blueprint.store import BlueprintStore
from llm.providers.mock_provider import MockProvider
from llm.router import LLMRouter
from orchestrator.config import LoopConfig
from orchestrator.session import LoopSession
from sandbox.base import SignalSource
from workspace.base import Installer, InstallResult, Manifest
from workspace.local import LocalWorkspace


class ScriptedSource(SignalSource):
    """Replays one scripted list of raw signals per verification pass; the last repeats."""

    def __init__(self, kind: str, passes: list[list[Any]]) -> None:
        self._kind = kind
        self._passes = passes or [[]]
        self.passes_run = 0
        self._pending: list[Any] = []

    @property
    def kind(self) -> str:
        return self._kind

    async def begin_pass(self) -> None:
        idx = min(self.passes_run, len(self._passes) - 1)
        self._pending = list(self._passes[idx])
        self.passes_run += 1

    async def poll(self) -> list[Any]:
        drained, self._pending = self._pending, []
        return drained


class ScriptedInstaller(Installer):
    def __init__(self, results: list[InstallResult] | None = None) -> None:
        self._results = results or [InstallResult(success=True)]
        self.calls: list[Manifest] = []

    async def install(self, manifest: Manifest) -> InstallResult:
        self.calls.append(manifest)
        return self._results[min(len(self.calls) - 1, len(self._results) - 1)]


def error_at(path: str, line: int = 1, message: str = "NameError: name 'x' is not defined") -> dict:
    return {"severity": "error", "message": message, "path": path, "line": line}


def plan_fixture(*steps: tuple[str, str, str], summary: str = "Add feature") -> dict:
    return {
        "steps": [
            {"description": d, "target": t, "action": a} for d, t, a in steps
        ],
        "summary": summary,
        "overview": "",
        "clarification": "",
    }


class Harness:
    def __init__(
        self,
        root: Path,
        fixtures: dict[str, Any] | None = None,
        diagnostics: list[list[Any]] | None = None,
        console: list[list[Any]] | None = None,
        installer: ScriptedInstaller | None = None,
        max_attempts: int = 3,
        latency: float = 0.0,
    ) -> None:
        self.root = root
        self.provider = MockProvider(fixtures=fixtures, latency=latency)
        self.diagnostics = ScriptedSource("diagnostics", diagnostics or [[]])
        self.sources: list[SignalSource] = [self.diagnostics]
        if console is not None:
            self.console = ScriptedSource("console", console)
            self.sources.append(self.console)
        self.installer = installer or ScriptedInstaller()
        self.store = BlueprintStore(root / ".blueprint.yaml")
        self.workspace = LocalWorkspace(root)
        self.config = LoopConfig(
            max_attempts=max_attempts,
            quiescence_window=0.01,
            collect_timeout=2.0,
        )
        self.session = LoopSession(
            store=self.store,
            workspace=self.workspace,
            installer=self.installer,
            sources=self.sources,
            router=LLMRouter(provider=self.provider),
            config=self.config,
        )

    @property
    def reports(self):
        return self.session.channel.reports


@pytest.fixture
def harness_factory(tmp_path):
    def _make(**kwargs) -> Harness:
        return Harness(tmp_path, **kwargs)
    return _make


async def wait_for_lifecycle(session: LoopSession, request_id: str, state: str, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while session.lifecycle(request_id) != state:
        if loop.time() > deadline:
            raise AssertionError(f"Request never reached {state}; is {session.lifecycle(request_id)}")
        await asyncio.sleep(0.005)
