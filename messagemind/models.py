"""Data models shared by the segmenter, the analysis cascade and the index.

Attribute names are snake_case. Every model also accepts and emits the
camelCase field names the dashboard uses (``roomLabel``, ``keyTopics``)
through ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from messagemind.errors import InvalidInput


class Sentiment(StrEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS: dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# -- Messages and conversations ------------------------------------------------


class Message(_Model):
    """A single chat message, as extracted by the ingestion layer."""

    id: str
    content: str
    sender: str
    room_label: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


@dataclass(frozen=True)
class ConversationUnit:
    """A time- and room-bounded group of messages analyzed as one exchange.

    Messages are sorted ascending and share one room label.
    """

    room_label: str
    participants: frozenset[str]
    messages: tuple[Message, ...]

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def started_at(self) -> datetime:
        return self.messages[0].timestamp

    @property
    def ended_at(self) -> datetime:
        return self.messages[-1].timestamp


def coerce_messages(messages: Iterable[Message | Mapping[str, Any]]) -> list[Message]:
    """Validate caller input into a list of ``Message``.

    Raises:
        InvalidInput: The input is not a sequence of messages, or an item
            does not validate.
    """
    if isinstance(messages, (str, bytes, Mapping)) or not isinstance(messages, Iterable):
        msg = "messages must be a sequence of message objects"
        raise InvalidInput(msg)

    result: list[Message] = []
    for position, item in enumerate(messages):
        if isinstance(item, Message):
            result.append(item)
            continue
        if not isinstance(item, Mapping):
            msg = f"message at position {position} is {type(item).__name__}, expected a mapping"
            raise InvalidInput(msg)
        try:
            result.append(Message.model_validate(item))
        except ValidationError as exc:
            msg = f"message at position {position} is invalid: {exc}"
            raise InvalidInput(msg) from exc
    return result


# -- Analysis ------------------------------------------------------------------


class AnalysisResult(_Model):
    """Merged analysis of one conversation unit.

    ``sources`` maps each capability to the provider that produced it, or
    ``"heuristic"`` when the local engine filled it in.
    """

    date: str
    room_label: str
    message_count: int
    participants: list[str]
    summary: str
    key_topics: list[str] = Field(default_factory=list, max_length=5)
    sentiment: Sentiment
    priority: Priority
    insights: list[str] = Field(default_factory=list, max_length=3)
    patterns: list[str] = Field(default_factory=list, max_length=3)
    action_items: list[str] = Field(default_factory=list, max_length=3)
    sources: dict[str, str] = Field(default_factory=dict)


IntentCategory = Literal[
    "question", "request", "information", "social", "urgent", "business", "personal"
]


class MessageIntent(_Model):
    """Rule-based reading of a single message.

    ``urgency`` runs from 0 to 1; ``entities`` holds names, times and action
    verbs found in the text, in order of first appearance.
    """

    intent: str
    confidence: float = Field(ge=0, le=1)
    category: IntentCategory
    entities: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: float = Field(default=0.0, ge=0, le=1)


class IntentStats(_Model):
    """Aggregate view over a batch of ``MessageIntent`` values.

    ``urgency_distribution`` buckets urgency below 0.3 as ``low``, below 0.7
    as ``medium`` and the rest as ``high``.
    """

    total: int
    intent_distribution: dict[str, int]
    average_confidence: float
    urgency_distribution: dict[str, int]
    sentiment_distribution: dict[str, int]


class KnowledgeEntry(_Model):
    """One searchable knowledge-base entry built from a conversation unit."""

    id: str
    room_label: str
    started_at: datetime
    participants: list[str]
    summary: str
    topics: list[str]
    message_count: int
    messages: list[Message]


# -- Vector index --------------------------------------------------------------


class IndexItem(_Model):
    """One message submitted for indexing."""

    id: str
    content: str
    sender: str
    room_label: str
    timestamp: datetime
    source_type: str = "whatsapp"

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


class RecordMetadata(_Model):
    sender: str
    room_label: str
    timestamp: datetime
    source_type: str


class VectorRecord(_Model):
    id: str
    content: str
    embedding: list[float]
    metadata: RecordMetadata


class SearchResult(_Model):
    id: str
    content: str
    similarity: float = Field(ge=-1.0, le=1.0)
    metadata: RecordMetadata


class InsertReport(_Model):
    inserted: int = 0
    skipped_invalid: int = 0
    skipped_duplicate: int = 0
    degraded: int = 0


class IndexStats(_Model):
    total_messages: int
    messages_by_type: dict[str, int]
    messages_by_room: dict[str, int]
    oldest_message: datetime | None = None
    newest_message: datetime | None = None
    degraded_embeddings: int = 0
    embedding_provider: str | None = None
