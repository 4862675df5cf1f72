"""Sentence-embedding adapter backed by Hugging Face feature extraction."""

from __future__ import annotations

import logging
from typing import Any

import httpx
import numpy as np

from messagemind.config import settings
from messagemind.errors import ProviderBadResponse
from messagemind.providers.base import AnalysisPayload, CallOptions, Capability, ProviderAdapter
from messagemind.providers.http import post_json

logger = logging.getLogger(__name__)

EMBED_INPUT_CHARS = 2000


class HuggingFaceEmbeddingAdapter(ProviderAdapter):
    """Embeds a batch of texts in one request.

    The default model (all-MiniLM-L6-v2) yields 384-dimensional vectors,
    matching the index. Every returned vector is checked against
    ``dimension``.
    """

    name = "huggingface-embeddings"
    capabilities = frozenset({Capability.EMBED})

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        dimension: int | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.hf_api_key
        self._model = model or settings.hf_embedding_model
        self._dimension = dimension or settings.embedding_dimension
        self._base_url = (base_url or settings.hf_base_url).rstrip("/")
        self._client = client

    @property
    def dimension(self) -> int:
        return self._dimension

    async def _invoke(
        self,
        capability: Capability,
        payload: AnalysisPayload | list[str],
        options: CallOptions,
    ) -> list[list[float]]:
        if isinstance(payload, AnalysisPayload):
            msg = "embed expects a list of texts"
            raise ProviderBadResponse(self.name, msg)
        texts = [text[:EMBED_INPUT_CHARS] for text in payload]
        if not texts:
            return []

        data = await post_json(
            self.name,
            f"{self._base_url}/{self._model}",
            {"inputs": texts, "options": {"wait_for_model": True}},
            timeout=max(options.remaining(), 0.1),
            headers={"Authorization": f"Bearer {self._api_key}"},
            client=self._client,
        )
        return self._normalize(data, expected=len(texts))

    def _normalize(self, data: Any, *, expected: int) -> list[list[float]]:
        if not isinstance(data, list) or len(data) != expected:
            got = len(data) if isinstance(data, list) else type(data).__name__
            msg = f"expected {expected} embeddings, got {got}"
            raise ProviderBadResponse(self.name, msg)

        vectors: list[list[float]] = []
        for item in data:
            try:
                arr = np.asarray(item, dtype=np.float32)
            except (TypeError, ValueError) as exc:
                msg = "embedding is not numeric"
                raise ProviderBadResponse(self.name, msg) from exc
            if arr.ndim == 2:
                # token-level features: mean-pool into one sentence vector
                arr = arr.mean(axis=0)
            if arr.ndim != 1 or arr.shape[0] != self._dimension:
                msg = f"embedding has shape {arr.shape}, expected ({self._dimension},)"
                raise ProviderBadResponse(self.name, msg)
            vectors.append(arr.astype(float).tolist())
        return vectors
