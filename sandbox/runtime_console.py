"""
Runtime console: runs the project's entry command and streams its output.

Design constraints:
  - Runs in a subprocess to isolate crashes and infinite loops
  - Enforces a wall-clock timeout (default 15s); long-running programs
    such as servers are killed when the pass ends
  - stdout and stderr are merged and streamed line by line, so the monitor
    sees output as it is produced rather than only at exit
  - A final {"exit_code": N} signal is emitted once the process ends

This is NOT a security sandbox. It prevents accidental hangs and captures
output, nothing more.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from .base import SignalSource

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 15.0


class RuntimeConsole(SignalSource):

    def __init__(
        self,
        root: str | Path,
        command: list[str],
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._root = Path(root)
        self._command = list(command)
        self._timeout = timeout
        self._buffer: list[Any] = []
        self._proc: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None

    @property
    def kind(self) -> str:
        return "console"

    async def begin_pass(self) -> None:
        await self.end_pass()
        self._buffer = []
        if not self._command:
            return
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._command,
                cwd=str(self._root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            self._buffer.append(f"RuntimeError: could not start {self._command[0]}: {exc}")
            self._buffer.append({"exit_code": -1})
            return
        self._reader = asyncio.create_task(self._pump(self._proc))

    async def poll(self) -> list[Any]:
        drained, self._buffer = self._buffer, []
        return drained

    async def end_pass(self) -> None:
        proc, self._proc = self._proc, None
        reader, self._reader = self._reader, None
        if proc is not None and proc.returncode is None:
            proc.kill()
            await proc.wait()
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _pump(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        try:
            await asyncio.wait_for(self._read_lines(proc), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.info("Entry command still running after %.1fs; stopping it", self._timeout)
            proc.kill()
            await proc.wait()
            return
        code = await proc.wait()
        self._buffer.append({"exit_code": code})

    async def _read_lines(self, proc: asyncio.subprocess.Process) -> None:
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                break
            self._buffer.append(raw.decode("utf-8", errors="replace").rstrip("\n"))
