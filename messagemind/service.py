"""MessageMind service: the caller-facing API over analysis and search."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from messagemind.analysis.heuristics import detect_intent, intent_stats, message_priority
from messagemind.analysis.orchestrator import AnalysisOrchestrator
from messagemind.config import Settings, settings
from messagemind.index.vector_store import VectorIndex
from messagemind.models import (
    AnalysisResult,
    IndexItem,
    IndexStats,
    InsertReport,
    IntentStats,
    KnowledgeEntry,
    Message,
    MessageIntent,
    SearchResult,
    coerce_messages,
)
from messagemind.providers.base import CallOptions, Capability, ProviderAdapter
from messagemind.providers.registry import (
    ProviderRegistry,
    build_embedding_provider,
    build_registry,
)
from messagemind.segmenter import ALL_DATES, segment_conversations

logger = logging.getLogger(__name__)

MessageInput = Iterable[Message | Mapping[str, Any]]


class MessageMind:
    """Wires the provider registry, the orchestrator and the vector index.

    Use ``MessageMind.get()`` for the shared instance built from settings,
    or construct one directly with explicit collaborators.
    """

    _instance: MessageMind | None = None

    def __init__(
        self,
        *,
        registry: ProviderRegistry | None = None,
        embedder: ProviderAdapter | None = None,
        orchestrator: AnalysisOrchestrator | None = None,
        index: VectorIndex | None = None,
    ) -> None:
        self._orchestrator = orchestrator or AnalysisOrchestrator(registry)
        self._index = index or VectorIndex(embedder)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> MessageMind:
        """Build the registry and embedder from configured API keys."""
        config = config or settings
        return cls(registry=build_registry(config), embedder=build_embedding_provider(config))

    @classmethod
    def get(cls) -> MessageMind:
        """Return the shared MessageMind instance."""
        if cls._instance is None:
            cls._instance = cls.from_settings()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def orchestrator(self) -> AnalysisOrchestrator:
        return self._orchestrator

    @property
    def index(self) -> VectorIndex:
        return self._index

    # -- Analysis --------------------------------------------------------------

    async def analyze_conversations(
        self,
        messages: MessageInput,
        date: date | str | None = None,
        *,
        options: CallOptions | None = None,
    ) -> list[AnalysisResult]:
        """Segment *messages* and analyze every unit, highest priority first.

        Raises:
            InvalidInput: Malformed messages or an unparseable date.
        """
        units = segment_conversations(messages, date)
        return await self._orchestrator.analyze(units, options=options)

    async def build_knowledge_base(
        self,
        messages: MessageInput,
        *,
        options: CallOptions | None = None,
    ) -> list[KnowledgeEntry]:
        """One summarized entry per conversation unit, across all dates."""
        entries: list[KnowledgeEntry] = []
        for unit in segment_conversations(messages, ALL_DATES):
            resolve = self._orchestrator.resolve
            summary, _ = await resolve(Capability.SUMMARIZE, unit, options=options)
            topics, _ = await resolve(Capability.TOPICS, unit, options=options)
            entries.append(
                KnowledgeEntry(
                    id=f"kb_{unit.started_at:%Y%m%dT%H%M%S}_{len(entries)}",
                    room_label=unit.room_label,
                    started_at=unit.started_at,
                    participants=sorted(unit.participants),
                    summary=summary,
                    topics=topics,
                    message_count=unit.message_count,
                    messages=list(unit.messages),
                )
            )
        logger.info("Built %d knowledge base entries", len(entries))
        return entries

    def prioritize_messages(
        self,
        messages: MessageInput,
        now: datetime | None = None,
    ) -> list[tuple[Message, float]]:
        """Messages paired with their attention score, highest first."""
        now = now or datetime.now(UTC)
        scored = [(m, message_priority(m, now)) for m in coerce_messages(messages)]
        return sorted(scored, key=lambda pair: pair[1], reverse=True)

    def analyze_intent(self, message: Message | Mapping[str, Any] | str) -> MessageIntent:
        """Rule-based intent of one message or of raw text."""
        if isinstance(message, str):
            return detect_intent(message)
        (intent,) = self.analyze_intents([message])
        return intent

    def analyze_intents(self, messages: MessageInput) -> list[MessageIntent]:
        """Intents for a batch of messages, in input order.

        Raises:
            InvalidInput: Malformed messages.
        """
        intents = [detect_intent(m.content) for m in coerce_messages(messages)]
        logger.debug("Parsed intents for %d message(s)", len(intents))
        return intents

    def intent_stats(self, intents: Iterable[MessageIntent]) -> IntentStats:
        return intent_stats(list(intents))

    # -- Index -----------------------------------------------------------------

    async def index_messages(
        self, batch: Iterable[IndexItem | Message | Mapping[str, Any]]
    ) -> InsertReport:
        return await self._index.insert(batch)

    async def search(self, query: str, k: int | None = None) -> list[SearchResult]:
        return await self._index.search(query, k)

    def find_similar(self, message_id: str, k: int = 5) -> list[SearchResult]:
        return self._index.find_similar(message_id, k)

    def index_stats(self) -> IndexStats:
        return self._index.stats()

    # -- Health ----------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Configured providers, open circuits and embedding health."""
        return {
            "providers": self._orchestrator.registry.names,
            "open_circuits": self._orchestrator.breaker.open_circuits(),
            "embedding_provider": self._index.embedding_provider,
            "degraded_embeddings": self._index.degraded_count,
        }
