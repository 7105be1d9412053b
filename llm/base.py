"""
Provider interface for model inference.

Every role in the loop (planner, implementer, repairer) speaks to a model
through one of these providers. Calls are async so the orchestration loop
never blocks; token counts are best-effort and -1 when unknown.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class InferenceRequest:
    system_prompt: str
    user_prompt: str
    max_new_tokens: int = 2048
    temperature: float = 0.2
    # Ask the backend to constrain output to JSON where it supports that
    json_mode: bool = True
    # Routing metadata (role, attempt); never forwarded to the model
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return self.metadata.get("role", "")


@dataclass
class InferenceResponse:
    text: str
    input_tokens: int = -1
    output_tokens: int = -1
    provider: str = ""
    model: str = ""


class BaseLLMProvider(ABC):
    """
    Stateless wrapper around a model backend.

    Providers own transport concerns only. Prompt rendering, schema
    validation and retries belong to the router.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Identifier used in logs and InferenceResponse.provider."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Active model identifier."""

    @abstractmethod
    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """Run one completion. Must not block the event loop."""
