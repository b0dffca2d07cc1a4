"""Generator adapters for the hosted and local language models."""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

import google.generativeai as genai

from app.config import ProviderSettings, load_environment
from structured_output import GenerationResult, GeneratorError, TokenUsage, run_blocking

LOGGER = logging.getLogger(__name__)

OLLAMA_REQUEST_TIMEOUT = 300


def _usage_from_metadata(metadata: Any) -> TokenUsage:
    if metadata is None:
        return TokenUsage()
    prompt_units = int(getattr(metadata, "prompt_token_count", 0) or 0)
    completion_units = int(getattr(metadata, "candidates_token_count", 0) or 0)
    total_units = int(getattr(metadata, "total_token_count", 0) or 0)
    return TokenUsage(
        prompt_units=prompt_units,
        completion_units=completion_units,
        total_units=total_units or prompt_units + completion_units,
    )


class GeminiGenerator:
    """
    Async generator backed by Google Gemini.

    System instructions are passed through the model's ``system_instruction``
    slot, so each call builds a lightweight ``GenerativeModel``.
    """

    def __init__(
        self,
        model_name: str,
        *,
        api_key: Optional[str],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        if not api_key:
            raise GeneratorError("Missing GEMINI_API_KEY. Add it to .env or environment variables.")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _generation_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.max_tokens is not None:
            config["max_output_tokens"] = self.max_tokens
        return config

    async def __call__(self, prompt: str, system_instructions: Optional[str] = None) -> GenerationResult:
        model = genai.GenerativeModel(self.model_name, system_instruction=system_instructions)
        LOGGER.debug("Calling Gemini model %s (%d prompt chars)", self.model_name, len(prompt))
        try:
            response = await model.generate_content_async(
                prompt, generation_config=self._generation_config() or None
            )
        except Exception as exc:  # noqa: BLE001
            raise GeneratorError(f"Gemini request failed: {exc}") from exc

        try:
            text = response.text
        except ValueError as exc:
            # Raised when the candidate was blocked or carries no text part.
            raise GeneratorError(f"Gemini returned no text: {exc}") from exc
        if not text:
            raise GeneratorError("Empty response from Gemini")
        return GenerationResult(
            content=text, usage=_usage_from_metadata(getattr(response, "usage_metadata", None))
        )


class OllamaGenerator:
    """Generator for a local Ollama server; the blocking HTTP call runs in a worker thread."""

    def __init__(
        self,
        model_name: str,
        *,
        base_url: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        request_timeout: float = OLLAMA_REQUEST_TIMEOUT,
    ) -> None:
        self.model_name = model_name
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout

    def build_payload(self, prompt: str, system_instructions: Optional[str]) -> Dict[str, Any]:
        full_prompt = f"{system_instructions}\n\n{prompt}" if system_instructions else prompt
        options: Dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens is not None:
            options["num_predict"] = self.max_tokens
        return {"model": self.model_name, "prompt": full_prompt, "stream": False, "options": options}

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        request = urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.request_timeout) as response:
                body = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            if exc.code == 404 and "not found" in detail:
                raise GeneratorError(
                    f"Model '{self.model_name}' not found on the Ollama server. "
                    f"Run: ollama pull {self.model_name}"
                ) from exc
            raise GeneratorError(f"Ollama API error {exc.code}: {detail}") from exc
        except urllib.error.URLError as exc:
            raise GeneratorError(
                f"Cannot connect to Ollama at {self.base_url} ({exc.reason}). "
                f"Make sure Ollama is running, then run: ollama pull {self.model_name}"
            ) from exc
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise GeneratorError(f"Ollama returned a non-JSON body: {body[:200]}") from exc

    async def __call__(self, prompt: str, system_instructions: Optional[str] = None) -> GenerationResult:
        data = await run_blocking(self._post, self.build_payload(prompt, system_instructions))
        prompt_units = int(data.get("prompt_eval_count") or 0)
        completion_units = int(data.get("eval_count") or 0)
        return GenerationResult(
            content=data.get("response") or "",
            usage=TokenUsage(
                prompt_units=prompt_units,
                completion_units=completion_units,
                total_units=prompt_units + completion_units,
            ),
        )


def create_generator(settings: ProviderSettings):
    if settings.provider == "gemini":
        return GeminiGenerator(
            settings.model,
            api_key=settings.api_key,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    if settings.provider == "ollama":
        return OllamaGenerator(
            settings.model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    raise GeneratorError(f"Unsupported LLM_PROVIDER: {settings.provider!r} (expected gemini or ollama)")


def create_generator_from_env(model_name: Optional[str] = None):
    """Build the generator selected by ``LLM_PROVIDER``, optionally overriding the model."""
    load_environment()
    settings = ProviderSettings.from_env()
    if model_name:
        settings.model = model_name
    LOGGER.info("Using %s model %s", settings.provider, settings.model)
    return create_generator(settings)
