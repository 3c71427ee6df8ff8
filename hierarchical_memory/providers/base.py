"""Async LLM provider base: one POST per attempt, shared retry policy."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from ..types import LLMProviderError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = [1.0, 2.0, 4.0]


def is_retryable(status_code: int) -> bool:
    """Rate limits and server errors are worth another attempt."""
    return status_code == 429 or status_code >= 500


class BaseProvider(ABC):
    """Base for summarization providers.

    Subclasses describe the endpoint through the hook methods; ``complete()``
    owns the HTTP round trip and retries. Pass ``transport`` to route requests
    through ``httpx.MockTransport`` in tests.
    """

    _timeout: float = 60.0
    retry_backoff: list[float] = RETRY_BACKOFF

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.last_usage: dict = {}
        self._transport = transport

    @abstractmethod
    def _provider_name(self) -> str: ...

    @abstractmethod
    def _get_url(self) -> str: ...

    @abstractmethod
    def _get_headers(self) -> dict: ...

    @abstractmethod
    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict: ...

    @abstractmethod
    def _extract_text(self, data: dict) -> str: ...

    def _error(self, message: str, status_code: int | None = None) -> LLMProviderError:
        return LLMProviderError(message, provider=self._provider_name(), status_code=status_code)

    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(self._get_url(), headers=self._get_headers(), json=payload)

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        """Return the model's text, retrying transient failures up to MAX_RETRIES times.

        Non-retryable HTTP statuses raise LLMProviderError immediately.
        """
        payload = self._build_payload(system, user, max_tokens)
        last_error: LLMProviderError | None = None

        for attempt in range(MAX_RETRIES):
            try:
                response = await self._post(payload)
            except httpx.HTTPError as e:
                last_error = self._error(f"HTTP error: {e}")
            else:
                if response.status_code == 200:
                    data = response.json()
                    self.last_usage = data.get("usage", {})
                    return self._extract_text(data)
                error = self._error(
                    f"HTTP {response.status_code}: {response.text}", response.status_code,
                )
                if not is_retryable(response.status_code):
                    raise error
                last_error = error

            if attempt < MAX_RETRIES - 1:
                delay = self.retry_backoff[attempt]
                logger.warning(
                    "%s attempt %d failed (%s), retrying in %.1fs",
                    self._provider_name(), attempt + 1, last_error, delay,
                )
                await asyncio.sleep(delay)

        raise last_error or self._error("Max retries exceeded")


__all__ = ["BaseProvider", "LLMProviderError", "is_retryable"]
