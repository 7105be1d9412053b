"""
pip-backed dependency installer.

Runs `python -m pip install` against the workspace manifest in a subprocess
with a wall-clock timeout. Like the runtime console, it returns a result
regardless of outcome and never raises on install failure; the caller turns
failures into diagnostics.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

from .base import Installer, InstallResult, Manifest

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 300.0
_MAX_DETAIL_LINES = 20


class PipInstaller(Installer):

    def __init__(self, root: str | Path, timeout: float = _DEFAULT_TIMEOUT) -> None:
        self._root = Path(root)
        self._timeout = timeout

    def _command(self, manifest: Manifest) -> list[str]:
        base = [sys.executable, "-m", "pip", "install", "--disable-pip-version-check"]
        if Path(manifest.path).name == "pyproject.toml":
            return base + ["-e", str((self._root / manifest.path).parent)]
        return base + ["-r", str(self._root / manifest.path)]

    async def install(self, manifest: Manifest) -> InstallResult:
        cmd = self._command(manifest)
        logger.info("Installing dependencies from %s", manifest.path)
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return InstallResult(success=False, details=f"Could not start installer: {exc}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            return InstallResult(
                success=False,
                details=f"Install timed out after {self._timeout}s",
            )

        elapsed = time.monotonic() - start
        if proc.returncode == 0:
            logger.info("Install succeeded in %.1fs", elapsed)
            return InstallResult(success=True)

        stderr = stderr_bytes.decode("utf-8", errors="replace")
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        tail = (stderr or stdout).strip().splitlines()[-_MAX_DETAIL_LINES:]
        logger.warning("Install failed with exit code %s", proc.returncode)
        return InstallResult(
            success=False,
            details=f"pip exited with {proc.returncode}: " + "\n".join(tail),
        )
