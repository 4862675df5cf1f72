"""Hugging Face Inference API adapter for summarization and sentiment."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from messagemind.config import settings
from messagemind.errors import ProviderBadResponse
from messagemind.models import Sentiment
from messagemind.providers.base import AnalysisPayload, CallOptions, Capability, ProviderAdapter
from messagemind.providers.http import post_json

logger = logging.getLogger(__name__)

SUMMARY_INPUT_CHARS = 1000
SENTIMENT_INPUT_CHARS = 500
_STARS = re.compile(r"^([1-5])\s*stars?$")


def sentiment_from_label(label: str) -> Sentiment | None:
    """Map the label conventions of common sentiment models onto ``Sentiment``.

    Handles ``positive``/``negative``/``neutral`` names, ``LABEL_0..2``
    (negative, neutral, positive) and ``N stars`` ratings.
    """
    value = label.strip().lower()
    if stars := _STARS.match(value):
        rating = int(stars.group(1))
        if rating <= 2:
            return Sentiment.NEGATIVE
        if rating == 3:
            return Sentiment.NEUTRAL
        return Sentiment.POSITIVE
    if value == "label_2" or "pos" in value:
        return Sentiment.POSITIVE
    if value == "label_0" or "neg" in value:
        return Sentiment.NEGATIVE
    if value in ("label_1", "neutral", "neu"):
        return Sentiment.NEUTRAL
    return None


def _flatten_scores(data: Any) -> list[dict[str, Any]]:
    # text-classification answers [[{label, score}, ...]] or [{label, score}, ...]
    if isinstance(data, list) and data and isinstance(data[0], list):
        data = data[0]
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict) and "label" in item]


class HuggingFaceAdapter(ProviderAdapter):
    """Dedicated summarization and classification models."""

    name = "huggingface"
    capabilities = frozenset({Capability.SUMMARIZE, Capability.SENTIMENT})

    def __init__(
        self,
        api_key: str | None = None,
        *,
        summarization_model: str | None = None,
        sentiment_model: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.hf_api_key
        self._summarization_model = summarization_model or settings.hf_summarization_model
        self._sentiment_model = sentiment_model or settings.hf_sentiment_model
        self._base_url = (base_url or settings.hf_base_url).rstrip("/")
        self._client = client

    async def _post(self, model: str, body: dict[str, Any], timeout: float) -> Any:
        body = {**body, "options": {"wait_for_model": True, "use_cache": False}}
        logger.debug("Calling Hugging Face model %s", model)
        return await post_json(
            self.name,
            f"{self._base_url}/{model}",
            body,
            timeout=timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
            client=self._client,
        )

    async def _invoke(
        self,
        capability: Capability,
        payload: AnalysisPayload | list[str],
        options: CallOptions,
    ) -> Any:
        if not isinstance(payload, AnalysisPayload):
            msg = f"{capability} expects a conversation payload"
            raise ProviderBadResponse(self.name, msg)
        timeout = max(options.remaining(), 0.1)
        if capability is Capability.SUMMARIZE:
            return await self._summarize(payload.text, timeout)
        return await self._classify(payload.text, timeout)

    async def _summarize(self, text: str, timeout: float) -> str:
        data = await self._post(
            self._summarization_model,
            {
                "inputs": text[:SUMMARY_INPUT_CHARS],
                "parameters": {"max_length": 100, "min_length": 20, "do_sample": False},
            },
            timeout,
        )
        if isinstance(data, list) and data:
            data = data[0]
        summary = data.get("summary_text", "") if isinstance(data, dict) else ""
        summary = summary.strip()
        if len(summary) <= 10:
            msg = f"summary too short from {self._summarization_model}"
            raise ProviderBadResponse(self.name, msg)
        return summary

    async def _classify(self, text: str, timeout: float) -> Sentiment:
        body = {"inputs": text[:SENTIMENT_INPUT_CHARS]}
        data = await self._post(self._sentiment_model, body, timeout)
        scores = _flatten_scores(data)
        if not scores:
            msg = f"no labels in response from {self._sentiment_model}"
            raise ProviderBadResponse(self.name, msg)
        best = max(scores, key=lambda item: float(item.get("score", 0.0)))
        sentiment = sentiment_from_label(str(best["label"]))
        if sentiment is None:
            msg = f"unrecognized sentiment label '{best['label']}'"
            raise ProviderBadResponse(self.name, msg)
        return sentiment
