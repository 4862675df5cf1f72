"""In-memory vector index over chat messages with brute-force cosine search."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

import numpy as np
from pydantic import ValidationError

from messagemind.config import settings
from messagemind.errors import InvalidInput, ProviderError
from messagemind.models import (
    IndexItem,
    IndexStats,
    InsertReport,
    Message,
    RecordMetadata,
    SearchResult,
    VectorRecord,
)
from messagemind.providers.base import CallOptions, Capability, ProviderAdapter

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 3
SYSTEM_MARKERS = ("bridged", "WhatsApp bridge bot")
_WA_SUFFIX = re.compile(r"\s*\(WA\)\s*$")


def is_system_message(content: str) -> bool:
    """Bridge notices and bot commands, which are never indexed."""
    return content.startswith("!") or any(marker in content for marker in SYSTEM_MARKERS)


def normalize_sender(sender: str) -> str:
    """``@whatsapp_alice:server`` -> ``alice``."""
    return sender.split(":")[0].replace("@", "").replace("whatsapp_", "")


def normalize_room(room_label: str) -> str:
    return _WA_SUFFIX.sub("", room_label).strip()


def _coerce_items(batch: Iterable[IndexItem | Message | Mapping[str, Any]]) -> list[IndexItem]:
    if isinstance(batch, (str, bytes, Mapping)) or not isinstance(batch, Iterable):
        msg = "batch must be a sequence of messages"
        raise InvalidInput(msg)

    items: list[IndexItem] = []
    for position, item in enumerate(batch):
        if isinstance(item, IndexItem):
            items.append(item)
            continue
        if isinstance(item, Message):
            item = item.model_dump()
        if not isinstance(item, Mapping):
            msg = f"item at position {position} is {type(item).__name__}, expected a mapping"
            raise InvalidInput(msg)
        try:
            items.append(IndexItem.model_validate(item))
        except ValidationError as exc:
            msg = f"item at position {position} is invalid: {exc}"
            raise InvalidInput(msg) from exc
    return items


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine of *query* against every row of *matrix*; zero vectors score 0."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(scores, -1.0, 1.0)


class VectorIndex:
    """Stores message embeddings and answers nearest-neighbour queries.

    Embeddings come from *embedder* when one is configured. When it is
    missing or a batch fails, records get uniform random vectors in
    ``[-0.5, 0.5)`` instead; those are counted in ``stats()`` rather than
    raised, so search keeps working with degraded relevance.
    """

    def __init__(
        self,
        embedder: ProviderAdapter | None = None,
        *,
        dimension: int | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        similarity_floor: float | None = None,
        rng: np.random.Generator | None = None,
        options: CallOptions | None = None,
    ) -> None:
        self._embedder = embedder
        self._dimension = dimension or settings.embedding_dimension
        self._batch_size = batch_size or settings.embedding_batch_size
        if batch_delay is None:
            batch_delay = settings.embedding_batch_delay_ms / 1000
        self._batch_delay = batch_delay
        if similarity_floor is None:
            similarity_floor = settings.similarity_floor
        self._similarity_floor = similarity_floor
        self._rng = rng or np.random.default_rng()
        self._options = options
        self._records: list[VectorRecord] = []
        self._ids: set[str] = set()
        self._degraded: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def embedding_provider(self) -> str | None:
        return self._embedder.name if self._embedder is not None else None

    @property
    def degraded_count(self) -> int:
        return len(self._degraded)

    def __len__(self) -> int:
        return len(self._records)

    # -- Embedding -------------------------------------------------------------

    def _random_vectors(self, count: int) -> list[list[float]]:
        return self._rng.uniform(-0.5, 0.5, size=(count, self._dimension)).tolist()

    async def _embed(self, texts: list[str]) -> tuple[list[list[float]], bool]:
        """Vectors for *texts* and whether they are real embeddings."""
        if self._embedder is None:
            return self._random_vectors(len(texts)), False
        try:
            result = await self._embedder.call(Capability.EMBED, texts, self._options)
        except ProviderError as exc:
            logger.warning(
                "Embedding %d text(s) via %s failed (%s): %s; using random vectors",
                len(texts),
                exc.provider,
                exc.kind,
                exc,
            )
            return self._random_vectors(len(texts)), False
        except Exception:
            logger.exception(
                "Embedding %d text(s) via %s raised unexpectedly; using random vectors",
                len(texts),
                self._embedder.name,
            )
            return self._random_vectors(len(texts)), False

        vectors = self._checked(result.value, len(texts))
        if vectors is None:
            logger.warning(
                "Embeddings from %s do not form a %dx%d matrix of finite numbers; "
                "using random vectors",
                self._embedder.name,
                len(texts),
                self._dimension,
            )
            return self._random_vectors(len(texts)), False
        return vectors, True

    def _checked(self, vectors: Any, count: int) -> list[list[float]] | None:
        """*vectors* as ``count`` rows of the index dimension, or None."""
        try:
            matrix = np.asarray(vectors, dtype=float)
        except (TypeError, ValueError):
            return None
        if matrix.shape != (count, self._dimension) or not np.isfinite(matrix).all():
            return None
        return matrix.tolist()

    # -- Writes ----------------------------------------------------------------

    async def insert(
        self, batch: Iterable[IndexItem | Message | Mapping[str, Any]]
    ) -> InsertReport:
        """Embed and store a batch of messages.

        The whole batch is validated before anything is stored. System
        messages, messages shorter than three characters and ids already
        present are skipped.

        Raises:
            InvalidInput: The batch or one of its items is malformed.
        """
        items = _coerce_items(batch)

        async with self._lock:
            accepted: list[IndexItem] = []
            seen = set(self._ids)
            skipped_invalid = skipped_duplicate = 0
            for item in items:
                content = item.content.strip()
                if len(content) < MIN_CONTENT_LENGTH or is_system_message(content):
                    skipped_invalid += 1
                    continue
                if item.id in seen:
                    skipped_duplicate += 1
                    continue
                seen.add(item.id)
                accepted.append(item)

            if self._embedder is None and accepted:
                logger.warning(
                    "No embeddings provider configured; indexing %d message(s) with random vectors",
                    len(accepted),
                )

            degraded = 0
            for start in range(0, len(accepted), self._batch_size):
                if start and self._batch_delay:
                    await asyncio.sleep(self._batch_delay)
                chunk = accepted[start : start + self._batch_size]
                vectors, real = await self._embed([item.content for item in chunk])
                for item, vector in zip(chunk, vectors, strict=True):
                    self._store(item, vector)
                    if not real:
                        self._degraded.add(item.id)
                        degraded += 1

        report = InsertReport(
            inserted=len(accepted),
            skipped_invalid=skipped_invalid,
            skipped_duplicate=skipped_duplicate,
            degraded=degraded,
        )
        logger.info(
            "Indexed %d message(s) (%d filtered, %d duplicate, %d random vectors); total %d",
            report.inserted,
            report.skipped_invalid,
            report.skipped_duplicate,
            report.degraded,
            len(self._records),
        )
        return report

    def _store(self, item: IndexItem, vector: list[float]) -> None:
        self._records.append(
            VectorRecord(
                id=item.id,
                content=item.content,
                embedding=vector,
                metadata=RecordMetadata(
                    sender=normalize_sender(item.sender),
                    room_label=normalize_room(item.room_label),
                    timestamp=item.timestamp,
                    source_type=item.source_type,
                ),
            )
        )
        self._ids.add(item.id)

    def clear(self) -> None:
        self._records = []
        self._ids.clear()
        self._degraded.clear()
        logger.info("Cleared vector index")

    # -- Reads -----------------------------------------------------------------

    def _rank(
        self,
        query: np.ndarray,
        records: list[VectorRecord],
        k: int,
        floor: float | None,
    ) -> list[SearchResult]:
        matrix = np.asarray([r.embedding for r in records], dtype=float)
        scores = cosine_similarities(query, matrix)
        # stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")
        results: list[SearchResult] = []
        for i in order:
            score = float(scores[i])
            if floor is not None and score < floor:
                break
            record = records[i]
            results.append(
                SearchResult(
                    id=record.id,
                    content=record.content,
                    similarity=score,
                    metadata=record.metadata,
                )
            )
            if len(results) == k:
                break
        return results

    async def search(self, query: str, k: int | None = None) -> list[SearchResult]:
        """Top-*k* records by cosine similarity to *query*, above the floor."""
        if k is None:
            k = settings.default_search_limit
        records = list(self._records)
        if k <= 0 or not records:
            return []

        vectors, _real = await self._embed([query])
        query_vector = np.asarray(vectors[0], dtype=float)
        results = self._rank(query_vector, records, k, self._similarity_floor)
        logger.debug("Search %r matched %d of %d record(s)", query[:50], len(results), len(records))
        return results

    def find_similar(self, record_id: str, k: int = 5) -> list[SearchResult]:
        """Nearest stored neighbours of one record, excluding itself."""
        records = list(self._records)
        target = next((r for r in records if r.id == record_id), None)
        if target is None or k <= 0:
            return []
        others = [r for r in records if r.id != record_id]
        if not others:
            return []
        return self._rank(np.asarray(target.embedding, dtype=float), others, k, None)

    def stats(self) -> IndexStats:
        records = list(self._records)
        timestamps = [r.metadata.timestamp for r in records]
        return IndexStats(
            total_messages=len(records),
            messages_by_type=dict(Counter(r.metadata.source_type for r in records)),
            messages_by_room=dict(Counter(r.metadata.room_label for r in records)),
            oldest_message=min(timestamps) if timestamps else None,
            newest_message=max(timestamps) if timestamps else None,
            degraded_embeddings=len(self._degraded & {r.id for r in records}),
            embedding_provider=self.embedding_provider,
        )
