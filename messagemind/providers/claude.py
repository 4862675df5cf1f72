"""Anthropic Claude adapter via the official async SDK."""

from __future__ import annotations

import logging

import anthropic

from messagemind.config import settings
from messagemind.errors import (
    ProviderBadResponse,
    ProviderError,
    ProviderRateLimited,
    ProviderTimeout,
    ProviderUnavailable,
    error_for_status,
)
from messagemind.providers.generative import SYSTEM_PROMPT, GenerativeAdapter

logger = logging.getLogger(__name__)


def translate_error(provider: str, exc: anthropic.APIError) -> ProviderError:
    """Map an SDK exception onto the provider error taxonomy."""
    # APITimeoutError subclasses APIConnectionError, so check it first.
    if isinstance(exc, anthropic.APITimeoutError):
        return ProviderTimeout(provider, str(exc))
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderUnavailable(provider, str(exc))
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderRateLimited(provider, str(exc), status_code=429)
    if isinstance(exc, anthropic.APIStatusError):
        return error_for_status(provider, exc.status_code, str(exc))
    return ProviderBadResponse(provider, str(exc))


class ClaudeAdapter(GenerativeAdapter):
    """Text analysis through a Claude model."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.anthropic_api_key
        self._model = model or settings.claude_model
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client. Retries belong to the cascade."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, max_retries=0)
        return self._client

    async def _complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APIError as exc:
            raise translate_error(self.name, exc) from exc

        text = "".join(
            getattr(block, "text", "") for block in response.content if block.type == "text"
        )
        if not text.strip():
            msg = "response contained no text"
            raise ProviderBadResponse(self.name, msg)
        return text
