"""
Mock LLM provider for deterministic tests and offline runs.

Responses are registered per role. A fixture may be:
  - a dict: returned on every call
  - a list of dicts: returned in order, the last one repeating
  - a callable(request) -> dict: computed per call (sync or async)
Falls back to structurally valid defaults. Never touches the network.
"""

import asyncio
import inspect
import json
from typing import Any, Callable

from ..base import BaseLLMProvider, InferenceRequest, InferenceResponse

_DEFAULT_FIXTURES: dict[str, Any] = {
    "planner": {
        "steps": [
            {
                "description": "Create the requested module",
                "target": "main.py",
                "action": "create",
            },
        ],
        "summary": "Placeholder change produced in mock mode.",
        "overview": "",
        "clarification": "",
    },
    "implementer": {
        "content": "def main():\n    return None\n",
        "explanation": "Placeholder content produced in mock mode.",
    },
    "repairer": {
        "content": "def main():\n    return None\n",
        "explanation": "Placeholder repair produced in mock mode.",
    },
}

Fixture = dict[str, Any] | list[dict[str, Any]] | Callable[[InferenceRequest], Any]


class MockProvider(BaseLLMProvider):

    def __init__(
        self,
        fixtures: dict[str, Fixture] | None = None,
        latency: float = 0.0,
    ) -> None:
        self._fixtures: dict[str, Fixture] = {**_DEFAULT_FIXTURES, **(fixtures or {})}
        self._cursor: dict[str, int] = {}
        self._latency = latency
        self.calls: list[InferenceRequest] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock-v1"

    def register_fixture(self, role: str, response: Fixture) -> None:
        self._fixtures[role] = response
        self._cursor.pop(role, None)

    def calls_for(self, role: str) -> list[InferenceRequest]:
        return [c for c in self.calls if c.role == role]

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        self.calls.append(request)
        if self._latency:
            await asyncio.sleep(self._latency)

        payload = await self._next_payload(request)
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return InferenceResponse(
            text=text,
            input_tokens=len(request.user_prompt.split()),
            output_tokens=len(text.split()),
            provider=self.provider_name,
            model=self.model_name,
        )

    async def _next_payload(self, request: InferenceRequest) -> Any:
        role = request.role or "implementer"
        fixture = self._fixtures.get(role, self._fixtures["implementer"])

        if callable(fixture):
            result = fixture(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        if isinstance(fixture, list):
            idx = self._cursor.get(role, 0)
            self._cursor[role] = idx + 1
            return fixture[min(idx, len(fixture) - 1)]

        return fixture
