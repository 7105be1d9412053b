"""
User channel: outbound reports and progress events for the requesting user.

Reports (clarification, summary, unresolved) are the user-visible outcome of
a request; progress events are the running timeline. Both are fanned out to
async subscribers, each with its own bounded queue, and reports are also
kept in `reports` (bounded, oldest dropped first) for inspection.

The channel is not a singleton; one is constructed per session.
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator

from orchestrator.models import DiagnosticEvent, FeatureEntry

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 256  # slow consumers drop events instead of growing memory
_REPORT_HISTORY = 256  # most recent reports kept for inspection

CLARIFICATION_NEEDED = "clarification_needed"
SUMMARY = "summary"
UNRESOLVED = "unresolved"


@dataclass
class Report:
    kind: str
    request_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": f"report.{self.kind}", "request_id": self.request_id, "payload": self.payload}


class UserChannel:
    """
    Usage:
        channel = UserChannel()

        async with channel.subscribe() as queue:
            item = await queue.get()   # None once the channel closes
    """

    def __init__(self, history: int = _REPORT_HISTORY) -> None:
        self._subscribers: list[asyncio.Queue] = []
        self._closed = False
        self.reports: deque[Report] = deque(maxlen=history)

    # --- Outbound reports ---

    async def report_clarification_needed(self, request_id: str, question: str) -> None:
        await self._report(Report(CLARIFICATION_NEEDED, request_id, {"question": question}))

    async def report_summary(self, request_id: str, entry: FeatureEntry) -> None:
        await self._report(Report(SUMMARY, request_id, {"feature_entry": entry.to_dict()}))

    async def report_unresolved(
        self,
        request_id: str,
        events: list[DiagnosticEvent],
        attempts_made: int,
    ) -> None:
        await self._report(Report(
            UNRESOLVED,
            request_id,
            {"events": [e.to_dict() for e in events], "attempts_made": attempts_made},
        ))

    def reports_for(self, request_id: str) -> list[Report]:
        return [r for r in self.reports if r.request_id == request_id]

    async def _report(self, report: Report) -> None:
        logger.info("Report %s for request %s", report.kind, report.request_id)
        self.reports.append(report)
        await self.publish(report.to_dict())

    # --- Fan-out ---

    async def publish(self, event: dict[str, Any]) -> None:
        if self._closed:
            return
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("UserChannel: subscriber queue full, dropping event")

    @asynccontextmanager
    async def subscribe(self) -> AsyncGenerator[asyncio.Queue, None]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._subscribers.append(queue)
        try:
            yield queue
        finally:
            try:
                self._subscribers.remove(queue)
            except ValueError:
                pass

    async def close(self) -> None:
        """Signal every subscriber that nothing more will arrive."""
        self._closed = True
        for queue in self._subscribers:
            try:
                queue.put_nowait(None)  # sentinel
            except asyncio.QueueFull:
                pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
