"""LLM client — HTTP connection to the chat model.

The chat pipeline takes an LLM callable matching the protocol:

    async def __call__(self, system: str, messages: list[dict]) -> str: ...

`system` is the full instruction text (protocol prompt plus the stage
directive) and `messages` the transcript as [{"role", "content"}] dicts.

AnthropicLLM is the production implementation. Tests use StubLLM (defined
in the test helpers) instead.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
ANTHROPIC_VERSION = "2023-06-01"

RETRYABLE_STATUS = {429, 529}


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, system: str, messages: list[dict]) -> str: ...


# ---------------------------------------------------------------------------
# AnthropicLLM: Messages API over httpx
# ---------------------------------------------------------------------------

class AnthropicLLM:
    """Async client for the Anthropic Messages API.

    Transient failures (429, 529, any 5xx) are retried with exponential
    backoff: 1s, 2s, 4s ... plus up to 0.5s jitter, capped at 8s.

    Args:
        api_key:     Anthropic API key.
        model:       Model identifier.
        max_tokens:  Reply token budget. Stage-4 replies carry the whole story.
        base_url:    API root, overridable for proxies and tests.
        timeout:     HTTP timeout in seconds.
        max_retries: Retries after the first attempt.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2000,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries

    @classmethod
    def from_config(cls, config: dict) -> AnthropicLLM:
        conf = config.get("anthropic", {})
        if not conf.get("api_key"):
            raise LLMError("ANTHROPIC_API_KEY is not set")
        return cls(
            api_key=conf["api_key"],
            model=conf.get("model", DEFAULT_MODEL),
            max_tokens=conf.get("max_tokens", 2000),
            base_url=conf.get("base_url", DEFAULT_BASE_URL),
            timeout=conf.get("timeout", 120.0),
            max_retries=conf.get("max_retries", 2),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _build_request(self, system: str, messages: list[dict]) -> tuple[str, dict]:
        """Return (url, body) for a Messages API call."""
        url = f"{self._base_url}/v1/messages"
        body = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": messages,
        }
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Join the text blocks of a Messages API response."""
        content = data.get("content")
        if not isinstance(content, list):
            raise LLMError("Unexpected response format from Anthropic API")
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(2 ** attempt + random.random() * 0.5, 8.0)

    async def __call__(self, system: str, messages: list[dict]) -> str:
        url, body = self._build_request(system, messages)
        logger.debug(
            "llm call url=%s messages=%d system_len=%d", url, len(messages), len(system)
        )

        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=body, headers=self._headers())
                    resp.raise_for_status()
                break
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                retryable = status in RETRYABLE_STATUS or status >= 500
                if not retryable or attempt >= self._max_retries:
                    raise LLMError(f"Anthropic API returned HTTP {status}", status=status) from e
                delay = self._backoff(attempt)
                attempt += 1
                logger.warning(
                    "Anthropic API retry %d/%d after %.1fs (HTTP %d)",
                    attempt, self._max_retries, delay, status,
                )
                await asyncio.sleep(delay)
            except httpx.ConnectError as e:
                raise LLMError(f"Cannot connect to Anthropic API at {self._base_url}") from e
            except httpx.TimeoutException as e:
                raise LLMError(f"Anthropic API timed out after {self._timeout}s") from e

        text = self._parse_response(resp.json())
        logger.debug("llm response len=%d", len(text))
        return text


# ---------------------------------------------------------------------------
# LLMError: raised by AnthropicLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the model backend cannot be reached or returns an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
