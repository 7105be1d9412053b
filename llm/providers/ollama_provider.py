"""
Ollama provider: local inference via the Ollama REST API.

Expects an Ollama daemon at http://localhost:11434 unless OLLAMA_BASE_URL
says otherwise. Requests use Ollama's JSON output mode since every role in
the loop answers with a JSON object.

Planning and editing can run on different models: OLLAMA_MODEL_<ROLE>
(e.g. OLLAMA_MODEL_PLANNER) overrides OLLAMA_MODEL for that role only.
"""

import logging
import os

import httpx

from ..base import BaseLLMProvider, InferenceRequest, InferenceResponse

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:11434"
_DEFAULT_MODEL = "qwen2.5-coder:7b"
# CPU inference on a 7B model can take minutes per request
_TIMEOUT_SECONDS = float(os.environ.get("OLLAMA_TIMEOUT", "600"))


class OllamaProvider(BaseLLMProvider):

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        role_models: dict[str, str] | None = None,
    ) -> None:
        self._model = model or os.environ.get("OLLAMA_MODEL", _DEFAULT_MODEL)
        self._base_url = (base_url or os.environ.get("OLLAMA_BASE_URL", _DEFAULT_BASE_URL)).rstrip("/")
        self._role_models = dict(role_models or {})

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def model_for(self, role: str) -> str:
        if role in self._role_models:
            return self._role_models[role]
        if role:
            override = os.environ.get(f"OLLAMA_MODEL_{role.upper()}")
            if override:
                return override
        return self._model

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        model = self.model_for(request.role)
        payload = {
            "model": model,
            "system": request.system_prompt,
            "prompt": request.user_prompt,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_new_tokens,
            },
        }
        if request.json_mode:
            payload["format"] = "json"

        # Connect must be fast; reads can take minutes on CPU
        timeout = httpx.Timeout(connect=10.0, read=_TIMEOUT_SECONDS, write=30.0, pool=10.0)
        async with httpx.AsyncClient(timeout=timeout) as client:
            try:
                response = await client.post(f"{self._base_url}/api/generate", json=payload)
                response.raise_for_status()
            except httpx.ConnectError as exc:
                raise RuntimeError(
                    f"Ollama not reachable at {self._base_url}. Is `ollama serve` running?"
                ) from exc
            except httpx.ReadTimeout as exc:
                raise RuntimeError(
                    f"Model '{model}' gave no answer within {_TIMEOUT_SECONDS}s "
                    "(raise OLLAMA_TIMEOUT or choose a smaller model)"
                ) from exc
            data = response.json()

        logger.debug("ollama role=%s model=%s done_reason=%s", request.role, model, data.get("done_reason"))
        return InferenceResponse(
            text=data.get("response", ""),
            input_tokens=data.get("prompt_eval_count", -1),
            output_tokens=data.get("eval_count", -1),
            provider=self.provider_name,
            model=model,
        )

    def is_available_sync(self) -> bool:
        """Health check with the sync client; safe to call before any event loop exists."""
        try:
            return httpx.get(f"{self._base_url}/api/tags", timeout=2.0).status_code == 200
        except httpx.HTTPError:
            return False
