"""
Diagnostic Monitor: turns raw signals into a uniform DiagnosticEvent stream.

collect() is the loop's single suspension point per verification pass. It
polls every source until no new signal has arrived for the quiescence
window (or collect_timeout elapses), then normalizes what it saw.

Normalization:
  - diagnostics signals are mappings: severity, message, path, line, column
  - console signals are text lines plus a final {"exit_code": N} mapping;
    Python tracebacks are folded into one error located at the innermost
    frame inside the workspace
  - the error policy decides which source's errors fail a pass; errors from
    a source outside the policy are kept as warnings for context
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from orchestrator.models import (
    CONSOLE,
    DIAGNOSTICS,
    ERROR,
    WARNING,
    DiagnosticEvent,
    Location,
)
from sandbox.base import SignalSource

logger = logging.getLogger(__name__)

_TRACEBACK_START = "Traceback (most recent call last):"
_FRAME_RE = re.compile(r'^\s+File "(?P<path>[^"]+)", line (?P<line>\d+)')
_WARNING_RE = re.compile(r"^(?P<path>[^\s:][^:]*):(?P<line>\d+): (?P<msg>\w*Warning: .*)$")
_LOCATED_ERROR_RE = re.compile(r"^(?P<path>[^\s:][^:]*):(?P<line>\d+)(?::(?P<col>\d+))?: (?P<msg>.*)$")
_ERROR_WORD_RE = re.compile(r"\b\w*(Error|Exception)\b")

_SEVERITY_MAP = {
    "error": ERROR,
    "fatal": ERROR,
    "critical": ERROR,
    "warning": WARNING,
    "warn": WARNING,
}

_POLICY_SOURCES = {
    "any": {DIAGNOSTICS, CONSOLE},
    "diagnostics_only": {DIAGNOSTICS},
    "console_only": {CONSOLE},
}


class DiagnosticMonitor:

    def __init__(
        self,
        sources: list[SignalSource],
        root: str | Path | None = None,
        quiescence_window: float = 0.5,
        collect_timeout: float = 30.0,
        error_policy: str = "any",
    ) -> None:
        self._sources = list(sources)
        self._root = Path(root).resolve() if root else None
        self._quiescence = quiescence_window
        self._timeout = collect_timeout
        self._failing_sources = _POLICY_SOURCES[error_policy]
        self._poll_interval = max(0.01, quiescence_window / 5)

    async def collect(self) -> list[DiagnosticEvent]:
        """Wait for a stable reading and return events in discovery order."""
        raw: dict[int, list[Any]] = {idx: [] for idx in range(len(self._sources))}

        for source in self._sources:
            await source.begin_pass()
        try:
            await self._read_until_stable(raw)
        finally:
            for source in self._sources:
                await source.end_pass()

        events: list[DiagnosticEvent] = []
        for idx, source in enumerate(self._sources):
            if source.kind == CONSOLE:
                normalized = self._normalize_console(raw[idx])
            else:
                normalized = self._normalize_diagnostics(raw[idx])
            events.extend(self._apply_policy(e) for e in normalized)

        logger.info(
            "Verification pass: %d errors, %d warnings",
            sum(1 for e in events if e.is_error),
            sum(1 for e in events if not e.is_error),
        )
        return events

    async def _read_until_stable(self, raw: dict[int, list[Any]]) -> None:
        loop = asyncio.get_running_loop()
        start = last_new = loop.time()
        while True:
            got_new = False
            for idx, source in enumerate(self._sources):
                signals = await source.poll()
                if signals:
                    raw[idx].extend(signals)
                    got_new = True

            now = loop.time()
            if got_new:
                last_new = now
            elif now - last_new >= self._quiescence:
                return
            if now - start >= self._timeout:
                logger.warning(
                    "Signals still arriving after %.1fs; using partial reading",
                    self._timeout,
                )
                return
            await asyncio.sleep(self._poll_interval)

    def _apply_policy(self, event: DiagnosticEvent) -> DiagnosticEvent:
        if event.is_error and event.source not in self._failing_sources:
            return DiagnosticEvent(event.source, WARNING, event.message, event.location)
        return event

    # --- Normalization ---

    def _normalize_diagnostics(self, signals: list[Any]) -> list[DiagnosticEvent]:
        events = []
        for signal in signals:
            if not isinstance(signal, dict):
                signal = {"severity": "error", "message": str(signal)}
            severity = _SEVERITY_MAP.get(str(signal.get("severity", "error")).lower())
            if severity is None:
                continue  # info / hint level signals are not diagnostics
            events.append(DiagnosticEvent(
                source=DIAGNOSTICS,
                severity=severity,
                message=str(signal.get("message", "")).strip(),
                location=self._location(signal.get("path"), signal.get("line"), signal.get("column")),
            ))
        return events

    def _normalize_console(self, signals: list[Any]) -> list[DiagnosticEvent]:
        events: list[DiagnosticEvent] = []
        frames: list[Location] | None = None
        exit_code = 0

        for signal in signals:
            if isinstance(signal, dict):
                exit_code = int(signal.get("exit_code", 0) or 0)
                continue
            line = str(signal)

            if line.startswith(_TRACEBACK_START):
                frames = []
                continue

            if frames is not None:
                frame = _FRAME_RE.match(line)
                if frame:
                    location = self._location(frame.group("path"), frame.group("line"))
                    if location is not None:
                        frames.append(location)
                    continue
                if line[:1].isspace() or not line.strip():
                    continue  # source excerpt or caret line
                # First unindented line closes the traceback: the exception itself
                events.append(DiagnosticEvent(
                    CONSOLE, ERROR, line.strip(), frames[-1] if frames else None
                ))
                frames = None
                continue

            warning = _WARNING_RE.match(line)
            if warning:
                events.append(DiagnosticEvent(
                    CONSOLE,
                    WARNING,
                    warning.group("msg"),
                    self._location(warning.group("path"), warning.group("line")),
                ))
                continue

            if _ERROR_WORD_RE.search(line):
                located = _LOCATED_ERROR_RE.match(line)
                if located:
                    events.append(DiagnosticEvent(
                        CONSOLE,
                        ERROR,
                        located.group("msg"),
                        self._location(located.group("path"), located.group("line"), located.group("col")),
                    ))
                else:
                    events.append(DiagnosticEvent(CONSOLE, ERROR, line.strip()))

        if exit_code != 0 and not any(e.is_error for e in events):
            events.append(DiagnosticEvent(CONSOLE, ERROR, f"Process exited with code {exit_code}"))
        return events

    def _location(self, path: Any, line: Any = None, column: Any = None) -> Location | None:
        """Workspace-relative location, or None if the path lies outside the workspace."""
        if not path or str(path).startswith("<"):
            return None
        rel = str(path)
        candidate = Path(rel)
        if self._root is not None and candidate.is_absolute():
            try:
                rel = candidate.resolve().relative_to(self._root).as_posix()
            except ValueError:
                return None
        return Location(
            path=rel,
            line=int(line) if line not in (None, "") else None,
            column=int(column) if column not in (None, "") else None,
        )
