"""
Collaborators shared by every node of the request graph.

Bound to the node functions with functools.partial when the graph is built,
the same way the router is bound, so tests can inject fakes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from blueprint.store import BlueprintStore
from framework.user_channel import UserChannel
from orchestrator.applicator import ChangeApplicator
from orchestrator.dependency_gate import DependencyGate
from orchestrator.events import LoopEvent, lifecycle_event
from orchestrator.monitor import DiagnosticMonitor
from orchestrator.planner import PlanGenerator
from orchestrator.remediation import RemediationEngine

logger = logging.getLogger(__name__)


@dataclass
class LoopContext:
    store: BlueprintStore
    planner: PlanGenerator
    applicator: ChangeApplicator
    gate: DependencyGate
    monitor: DiagnosticMonitor
    remediation: RemediationEngine
    channel: UserChannel
    # request_id -> latest lifecycle state, visible while the graph runs
    lifecycles: dict[str, str] = field(default_factory=dict)
    # request_id -> remediation attempts started so far
    attempts: dict[str, int] = field(default_factory=dict)

    async def emit(self, events: list[dict[str, Any]], event: LoopEvent) -> None:
        """Append to the state's event list and publish on the channel."""
        data = event.to_dict()
        events.append(data)
        await self.channel.publish(data)

    async def transition(self, state: dict[str, Any], events: list[dict[str, Any]], lifecycle: str) -> str:
        request_id = state["request_id"]
        if self.lifecycles.get(request_id) != lifecycle:
            logger.info("Request %s: %s -> %s", request_id, self.lifecycles.get(request_id), lifecycle)
            self.lifecycles[request_id] = lifecycle
            await self.emit(events, lifecycle_event(request_id, lifecycle, state.get("attempts_made", 0)))
        return lifecycle

    def forget(self, request_id: str) -> None:
        self.lifecycles.pop(request_id, None)
        self.attempts.pop(request_id, None)
