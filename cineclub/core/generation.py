from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx

from cineclub.core.errors import GenerationError

logger = logging.getLogger(__name__)

_SUPPORTED_PROVIDERS = {"gemini", "openai"}
_DEFAULT_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class GenerationSettings:
    provider: str
    api_key: str | None
    model: str
    endpoint: str
    enabled: bool
    timeout: float
    temperature: float = 0.7


@lru_cache(maxsize=1)
def _get_settings() -> GenerationSettings:
    raw_provider = os.getenv("GENERATION_PROVIDER", "gemini").strip().lower()
    if raw_provider not in _SUPPORTED_PROVIDERS:
        logger.warning(
            "Unsupported GENERATION_PROVIDER '%s'; falling back to 'gemini'.",
            raw_provider,
        )
        provider = "gemini"
    else:
        provider = raw_provider

    if provider == "gemini":
        api_key = os.getenv("GENERATION_API_KEY") or os.getenv("GEMINI_API_KEY")
        default_model = "gemini-2.0-flash"
        default_endpoint = "https://generativelanguage.googleapis.com/v1beta/models"
    else:
        api_key = os.getenv("GENERATION_API_KEY") or os.getenv("OPENAI_API_KEY")
        default_model = "gpt-4o-mini"
        default_endpoint = "https://api.openai.com/v1/chat/completions"

    model = os.getenv("GENERATION_MODEL", default_model)
    endpoint = os.getenv("GENERATION_ENDPOINT", default_endpoint)
    enabled_value = os.getenv("GENERATION_ENABLED", "1").strip().lower()
    enabled = bool(api_key) and enabled_value not in {"0", "false", "no"}
    timeout = _DEFAULT_TIMEOUT_SECONDS
    raw_timeout = os.getenv("GENERATION_TIMEOUT")
    if raw_timeout:
        try:
            timeout = max(1.0, float(raw_timeout))
        except ValueError:
            logger.warning(
                "Invalid GENERATION_TIMEOUT value '%s'; using default.", raw_timeout
            )
    return GenerationSettings(
        provider=provider,
        api_key=api_key,
        model=model,
        endpoint=endpoint,
        enabled=enabled,
        timeout=timeout,
    )


def build_generation_client() -> Optional["GenerationClient"]:
    """Return a client for the configured provider, or None when it is disabled."""
    settings = _get_settings()
    if not settings.enabled:
        logger.info(
            "Generation(%s) disabled (no API key or GENERATION_ENABLED=0).",
            settings.provider,
        )
        return None
    return GenerationClient(settings)


class GenerationClient:
    """One-shot text generation against Gemini or an OpenAI-compatible endpoint.

    ``generate`` returns the model's raw text. Every transport problem
    (network error, timeout, non-2xx status, empty answer) is raised as
    :class:`GenerationError`; parsing the text is the caller's job.
    """

    def __init__(
        self,
        settings: GenerationSettings,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout)

    @property
    def provider(self) -> str:
        return self.settings.provider

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        if not self.settings.api_key:
            raise GenerationError("Missing API key for generation provider.")
        try:
            if self.settings.provider == "openai":
                return await self._call_openai(system_prompt, user_prompt)
            return await self._call_gemini(system_prompt, user_prompt)
        except httpx.HTTPError as exc:
            raise GenerationError(
                f"{self.settings.provider} request failed: {exc.__class__.__name__}"
            ) from exc

    async def _call_gemini(self, system_prompt: str, user_prompt: str) -> str:
        endpoint = self.settings.endpoint.rstrip("/")
        if endpoint.endswith(":generateContent"):
            url = endpoint
        else:
            url = f"{endpoint}/{self.settings.model}:generateContent"

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "responseMimeType": "application/json",
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {
                "role": "system",
                "parts": [{"text": system_prompt}],
            }

        response = await self._client.post(
            url,
            params={"key": self.settings.api_key},
            headers={"Content-Type": "application/json"},
            json=payload,
        )
        if response.status_code >= 400:
            sanitized_url = str(response.request.url.copy_with(query=None))
            logger.warning(
                "Gemini HTTP %s for %s: %s",
                response.status_code,
                sanitized_url,
                response.text[:500],
            )
            raise GenerationError(
                f"Gemini API responded with status {response.status_code}"
            )

        data = _json_body(response)
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise GenerationError("Gemini returned no candidates.")

        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts: List[Any] = []
        if isinstance(content, dict) and isinstance(content.get("parts"), list):
            parts = content["parts"]
        elif isinstance(content, list):
            parts = content

        chunks = [
            part["text"].strip()
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        text = "\n".join(chunk for chunk in chunks if chunk)
        if not text:
            raise GenerationError("Gemini returned an empty answer.")
        return text

    async def _call_openai(self, system_prompt: str, user_prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        body = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.settings.temperature,
            "response_format": {"type": "json_object"},
        }

        response = await self._client.post(
            self.settings.endpoint, headers=headers, json=body
        )
        if response.status_code >= 400:
            logger.warning(
                "OpenAI HTTP %s: %s", response.status_code, response.text[:500]
            )
            raise GenerationError(
                f"OpenAI API responded with status {response.status_code}"
            )

        data = _json_body(response)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Unexpected response structure from OpenAI.") from exc
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("OpenAI returned an empty answer.")
        return content

    async def aclose(self) -> None:
        await self._client.aclose()


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise GenerationError("Generation service returned a non-JSON envelope.") from exc
    if not isinstance(data, dict):
        raise GenerationError("Generation service returned an unexpected envelope.")
    return data
