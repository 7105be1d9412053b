"""
Static diagnostics source: compiles every Python file in the workspace.

Compilation happens in-process on source text only; nothing is imported or
executed. Syntax errors become error signals, compiler warnings (e.g.
SyntaxWarning for `is` against a literal) become warning signals.
"""

import logging
import warnings
from pathlib import Path
from typing import Any

from .base import SignalSource

logger = logging.getLogger(__name__)

_SKIP_DIRS = {".git", ".venv", "venv", "__pycache__", "node_modules", ".tox", "build", "dist"}


class StaticDiagnostics(SignalSource):

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._pending: list[dict[str, Any]] = []

    @property
    def kind(self) -> str:
        return "diagnostics"

    async def begin_pass(self) -> None:
        self._pending = []
        for path in self._iter_sources():
            self._pending.extend(self._check_file(path))
        logger.debug("Static check found %d signals", len(self._pending))

    async def poll(self) -> list[dict[str, Any]]:
        drained, self._pending = self._pending, []
        return drained

    def _iter_sources(self):
        for path in sorted(self._root.rglob("*.py")):
            rel_parts = path.relative_to(self._root).parts
            if any(part in _SKIP_DIRS or part.startswith(".") for part in rel_parts[:-1]):
                continue
            yield path

    def _check_file(self, path: Path) -> list[dict[str, Any]]:
        rel = path.relative_to(self._root).as_posix()
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return [{"severity": "error", "message": f"Unreadable source: {exc}", "path": rel}]

        signals: list[dict[str, Any]] = []
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                compile(source, rel, "exec", dont_inherit=True)
            except SyntaxError as exc:
                signals.append({
                    "severity": "error",
                    "message": f"{type(exc).__name__}: {exc.msg}",
                    "path": rel,
                    "line": exc.lineno,
                    "column": exc.offset,
                })
            except ValueError as exc:
                # e.g. source contains null bytes
                signals.append({"severity": "error", "message": str(exc), "path": rel})

        for warning in caught:
            signals.append({
                "severity": "warning",
                "message": f"{warning.category.__name__}: {warning.message}",
                "path": rel,
                "line": warning.lineno,
            })
        return signals
