"""
Streaming adapter: turns loop events and reports into timeline lines.

Stateless: it formats what it is given and owns no display state.
"""

import logging
from typing import Any, AsyncGenerator

from orchestrator.events import (
    ABANDONED,
    CLARIFICATION,
    COMPLETED,
    DIAGNOSIS,
    INSTALL,
    LIFECYCLE,
    PLAN_GENERATED,
    REPAIR,
    STEP_APPLIED,
    STEP_FAILED,
    VERIFICATION,
)

logger = logging.getLogger(__name__)

# Lifecycle changes are noisy; shown only in verbose timelines
PUBLIC_EVENT_TYPES = {
    PLAN_GENERATED,
    STEP_APPLIED,
    STEP_FAILED,
    INSTALL,
    VERIFICATION,
    DIAGNOSIS,
    REPAIR,
    CLARIFICATION,
    COMPLETED,
    ABANDONED,
}


def format_event_for_timeline(event: dict[str, Any]) -> str:
    event_type = event.get("type", "unknown")
    message = event.get("message", "")
    attempt = event.get("attempt", 0)
    payload = event.get("payload", {})

    prefix = f"[attempt {attempt}]" if attempt else "[plan]"

    if event_type == PLAN_GENERATED:
        steps = payload.get("steps", [])
        lines = [f"{prefix} Plan ({len(steps)} steps):"]
        for step in steps:
            lines.append(f"    {step.get('id')}. {step.get('description')} -> {step.get('target') or '?'}")
        return "\n".join(lines)

    if event_type == STEP_FAILED:
        return f"{prefix} FAIL {message} ({payload.get('detail', '')})"

    if event_type == VERIFICATION:
        lines = [f"{prefix} {message}"]
        for item in payload.get("events", [])[:10]:
            where = f" {item['location']}" if item.get("location") else ""
            lines.append(f"    {item['severity'].upper()}{where}: {item['message'][:120]}")
        return "\n".join(lines)

    if event_type == DIAGNOSIS:
        targets = ", ".join(payload.get("targets", []))
        return f"{prefix} Diagnosis: {targets}"

    if event_type == CLARIFICATION:
        return f"[question] {message}"

    if event_type == LIFECYCLE:
        return f"{prefix} -> {payload.get('state', '?')}"

    return f"{prefix} {message}"


async def stream_events_for_ui(
    event_stream: AsyncGenerator[dict[str, Any], None],
    include_internal: bool = False,
) -> AsyncGenerator[str, None]:
    """Filter an event stream and yield formatted timeline entries."""
    async for event in event_stream:
        if event is None:
            break
        if not include_internal and event.get("type") not in PUBLIC_EVENT_TYPES:
            continue
        yield format_event_for_timeline(event)


def build_timeline_text(events: list[dict[str, Any]], include_internal: bool = False) -> str:
    lines = []
    for event in events:
        if include_internal or event.get("type") in PUBLIC_EVENT_TYPES:
            lines.append(format_event_for_timeline(event))
    return "\n".join(lines)
