"""
LLM Router: the single point of contact between the loop and model inference.

Components NEVER call providers directly. This keeps:
  - provider selection in one place
  - schema validation always applied
  - retry-on-malformed-output uniform across roles
  - context budgeting consistent

Provider selection priority:
  1. Explicit provider passed to the constructor (test injection)
  2. Environment variable: LLM_PROVIDER = ollama | mock
  3. Auto-detection: Ollama health check, then Mock fallback
"""

import asyncio
import logging
import os
from typing import Any

from .base import BaseLLMProvider, InferenceRequest
from .context_builder import fit_variables
from .prompt_loader import get_schema, get_system_prompt, render_template
from .schema_validator import StructuredOutputError, parse_and_validate

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_TEMPERATURE_INCREMENT = 0.1  # nudge temperature to escape degenerate outputs


def _resolve_provider() -> BaseLLMProvider:
    env_provider = os.environ.get("LLM_PROVIDER", "").lower()

    if env_provider == "mock":
        from .providers.mock_provider import MockProvider
        return MockProvider()

    if env_provider == "ollama":
        from .providers.ollama_provider import OllamaProvider
        return OllamaProvider()

    if env_provider:
        raise ValueError(f"Unknown LLM_PROVIDER {env_provider!r}; expected 'ollama' or 'mock'")

    from .providers.ollama_provider import OllamaProvider
    provider = OllamaProvider()
    if provider.is_available_sync():
        logger.info("Auto-selected Ollama provider at %s", provider.base_url)
        return provider

    logger.warning(
        "No LLM backend reachable. Using Mock provider. "
        "Set LLM_PROVIDER=ollama and start `ollama serve` to use a real model."
    )
    from .providers.mock_provider import MockProvider
    return MockProvider()


class LLMRouter:
    """Combines prompt loading, budgeting, inference and validation per call."""

    def __init__(
        self,
        provider: BaseLLMProvider | None = None,
        max_context_tokens: int = 6144,
    ) -> None:
        self._provider = provider or _resolve_provider()
        self._max_context_tokens = max_context_tokens
        logger.info(
            "LLMRouter initialized with provider=%s model=%s",
            self._provider.provider_name,
            self._provider.model_name,
        )

    @property
    def provider(self) -> BaseLLMProvider:
        return self._provider

    async def call(
        self,
        role: str,
        template_key: str,
        variables: dict[str, Any],
        max_new_tokens: int = 2048,
        base_temperature: float = 0.2,
    ) -> dict[str, Any]:
        """
        Load prompt → fit context → infer → validate.

        Retries up to _MAX_RETRIES times on StructuredOutputError, raising the
        temperature slightly each time.

        Raises:
            StructuredOutputError: every attempt produced invalid output
            RuntimeError: the provider is unreachable
        """
        system_prompt = get_system_prompt(role)
        schema = get_schema(role)
        fitted = fit_variables(variables, self._max_context_tokens)
        user_prompt = render_template(role, template_key, fitted)

        last_error: StructuredOutputError | None = None

        for attempt in range(_MAX_RETRIES):
            temperature = base_temperature + attempt * _RETRY_TEMPERATURE_INCREMENT
            request = InferenceRequest(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_new_tokens=max_new_tokens,
                temperature=min(temperature, 1.0),
                metadata={"role": role, "template": template_key, "attempt": attempt},
            )

            response = await self._provider.infer(request)
            logger.debug(
                "role=%s attempt=%d input_tokens=%d output_tokens=%d",
                role,
                attempt,
                response.input_tokens,
                response.output_tokens,
            )
            try:
                return parse_and_validate(response.text, schema)
            except StructuredOutputError as exc:
                last_error = exc
                logger.warning(
                    "role=%s attempt=%d/%d invalid output: %s",
                    role,
                    attempt + 1,
                    _MAX_RETRIES,
                    exc,
                )
                if attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))

        raise last_error or StructuredOutputError(
            f"All {_MAX_RETRIES} retries exhausted for role={role}"
        )
