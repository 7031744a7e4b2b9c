"""Chat-completion client for the hosted LLM.

Only the request/response plumbing lives here: building the request,
mapping HTTP failures to typed errors and turning the model's reply into
JSON. Prompts and response schemas are in ai.insights.
"""
from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from handover.config import settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base class for LLM failures; the message is safe to show to callers."""
    pass


class LLMConfigurationError(LLMError):
    """Raised when the client is not configured (no API key)."""

    def __init__(self, message: str = "OpenAI API key not configured"):
        super().__init__(message)


class LLMUpstreamError(LLMError):
    """Raised when the provider answers with a non-2xx status or is unreachable."""

    def __init__(self, status: int | None, message: str | None = None):
        self.status = status
        super().__init__(message or f"OpenAI API error: {status}")


class LLMRateLimitError(LLMUpstreamError):
    """Raised on HTTP 429."""

    def __init__(self, message: str | None = None):
        super().__init__(429, message)


class LLMEmptyResponseError(LLMError):
    def __init__(self, message: str = "No content in AI response"):
        super().__init__(message)


class LLMParseError(LLMError):
    def __init__(self, message: str = "Failed to parse AI response"):
        super().__init__(message)


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence around a reply, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(text: str) -> Any:
    try:
        return json.loads(strip_code_fences(text))
    except ValueError as e:
        logger.error(f"Error parsing AI response: {e}; content: {text[:500]!r}")
        raise LLMParseError() from e


class LLMClient:
    """Minimal async client for an OpenAI-compatible chat-completions API."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.llm.api_key
        self.base_url = (base_url or settings.llm.base_url).rstrip("/")
        self.model = model or settings.llm.model
        self.temperature = settings.llm.temperature if temperature is None else temperature
        self.timeout = timeout or settings.llm.timeout
        # Tests hand in httpx.MockTransport
        self._transport = transport

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        """Send one system+user exchange and return the reply text."""
        if not self.api_key:
            logger.error("OpenAI API key not configured")
            raise LLMConfigurationError()

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/chat/completions", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"OpenAI request failed: {e}", exc_info=True)
            raise LLMUpstreamError(None, f"OpenAI request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("OpenAI rate limit hit")
            raise LLMRateLimitError()
        if not response.is_success:
            logger.error(f"OpenAI API error: {response.status_code} {response.text[:500]}")
            raise LLMUpstreamError(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise LLMParseError() from e

        choices = (data.get("choices") if isinstance(data, dict) else None) or []
        content = None
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content")
        if not content:
            logger.error("No content in OpenAI response")
            raise LLMEmptyResponseError()
        return content

    async def chat_json(self, system: str, user: str, max_tokens: int) -> Any:
        """Like complete(), but the reply must be JSON (fences tolerated)."""
        return parse_llm_json(await self.complete(system, user, max_tokens))
