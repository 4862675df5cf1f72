"""Google Gemini adapter (generateContent over HTTPS)."""

from __future__ import annotations

import logging

import httpx

from messagemind.config import settings
from messagemind.errors import ProviderBadResponse
from messagemind.providers.generative import SYSTEM_PROMPT, GenerativeAdapter
from messagemind.providers.http import post_json

logger = logging.getLogger(__name__)


class GeminiAdapter(GenerativeAdapter):
    """Text analysis through a Gemini model."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._model = model or settings.gemini_model
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    async def _complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        body = {
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.8,
                "topK": 40,
            },
        }
        data = await post_json(
            self.name,
            f"{self._base_url}/{self._model}:generateContent",
            body,
            timeout=timeout,
            params={"key": self._api_key},
            client=self._client,
        )

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            msg = "response has no candidate content"
            raise ProviderBadResponse(self.name, msg) from exc

        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            msg = "candidate content is empty"
            raise ProviderBadResponse(self.name, msg)

        usage = data.get("usageMetadata") or {}
        logger.debug(
            "Gemini %s used %s prompt / %s completion tokens",
            self._model,
            usage.get("promptTokenCount", 0),
            usage.get("candidatesTokenCount", 0),
        )
        return text
