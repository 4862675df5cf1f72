"""Tests for the MessageMind service facade."""

from datetime import UTC, datetime, timedelta

import pytest

from messagemind.analysis.breaker import CircuitBreaker
from messagemind.analysis.orchestrator import AnalysisOrchestrator
from messagemind.config import Settings
from messagemind.errors import InvalidInput, ProviderRateLimited
from messagemind.index.vector_store import VectorIndex
from messagemind.models import Priority
from messagemind.providers.base import Capability, ProviderAdapter
from messagemind.providers.registry import ProviderRegistry
from messagemind.service import MessageMind

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)


class AxisEmbedder(ProviderAdapter):
    """Two-dimensional embeddings: dinner talk on one axis, the rest on the other."""

    name = "axis"
    capabilities = frozenset({Capability.EMBED})

    async def _invoke(self, capability, payload, options):
        return [[1.0, 0.0] if "dinner" in text.lower() else [0.0, 1.0] for text in payload]


def _raw(id: str, content: str, sender: str, minutes: float, room: str = "Family") -> dict:
    return {
        "id": id,
        "content": content,
        "sender": sender,
        "roomLabel": room,
        "timestamp": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
    }


@pytest.fixture
def raw_messages() -> list[dict]:
    return [
        _raw("1", "Can you help me with the tap?", "alice", 0),
        _raw("2", "Sure, what is wrong with it?", "bob", 2),
        _raw("3", "It keeps dripping, please come by", "alice", 5),
        _raw("4", "URGENT: the server is down", "carol", 0, room="Work"),
        _raw("5", "urgent, on it", "dave", 1, room="Work"),
        _raw("6", "fixed, it was the disk", "dave", 30, room="Work"),
        _raw("7", "Dinner on Friday?", "alice", 60 * 24, room="Family"),
    ]


# -- Singleton ---------------------------------------------------------------


def test_get_returns_shared_instance(monkeypatch):
    monkeypatch.setattr("messagemind.config.settings.gemini_api_key", "")
    monkeypatch.setattr("messagemind.config.settings.anthropic_api_key", "")
    monkeypatch.setattr("messagemind.config.settings.hf_api_key", "")
    first = MessageMind.get()
    assert MessageMind.get() is first
    MessageMind._reset()
    assert MessageMind.get() is not first


def test_from_settings_registers_keyed_providers():
    mind = MessageMind.from_settings(Settings(gemini_api_key="g", hf_api_key="h"))
    status = mind.status()
    assert status["providers"] == ["gemini", "huggingface"]
    assert status["embedding_provider"] == "huggingface-embeddings"


# -- Analysis ----------------------------------------------------------------


async def test_analyze_conversations_ranks_units(raw_messages):
    results = await MessageMind().analyze_conversations(raw_messages, "2024-05-01")

    assert [r.room_label for r in results] == ["Work", "Family"]
    assert results[0].priority is Priority.HIGH
    assert results[1].summary == "Assistance request with 3 messages between 2 participants"


async def test_analyze_conversations_all_dates(raw_messages):
    results = await MessageMind().analyze_conversations(raw_messages, "all")
    # the lone Friday message is too small to form a unit
    assert len(results) == 2


async def test_analyze_conversations_rejects_bad_input():
    mind = MessageMind()
    with pytest.raises(InvalidInput):
        await mind.analyze_conversations("not messages")
    with pytest.raises(InvalidInput):
        await mind.analyze_conversations([], "tomorrow")


async def test_build_knowledge_base(raw_messages):
    entries = await MessageMind().build_knowledge_base(raw_messages)

    assert [e.room_label for e in entries] == ["Family", "Work"]
    family = entries[0]
    assert family.id.startswith("kb_20240501T090000")
    assert family.participants == ["alice", "bob"]
    assert family.message_count == 3
    assert family.summary.startswith("Assistance request")
    assert family.topics
    assert [m.id for m in family.messages] == ["1", "2", "3"]


def test_prioritize_messages(raw_messages):
    # two days on, recency no longer counts and keywords decide
    now = BASE_TIME + timedelta(days=2)
    ranked = MessageMind().prioritize_messages(raw_messages, now=now)
    scores = [score for _, score in ranked]
    assert scores == sorted(scores, reverse=True)
    assert [m.id for m, _ in ranked[:3]] == ["4", "5", "1"]
    assert ranked[0][1] == pytest.approx(15)


@pytest.mark.parametrize(
    ("message", "category"),
    [
        ("When is dinner", "question"),
        ({"id": "1", "content": "please call me", "sender": "a", "room_label": "r",
          "timestamp": "2024-05-01T09:00:00Z"}, "request"),
    ],
)
def test_analyze_intent(message, category):
    assert MessageMind().analyze_intent(message).category == category


def test_analyze_intents_and_stats(raw_messages):
    mind = MessageMind()
    intents = mind.analyze_intents(raw_messages)

    assert len(intents) == len(raw_messages)
    assert intents[0].category == "question"
    assert intents[3].category == "urgent"
    assert intents[3].urgency == pytest.approx(1.0)

    stats = mind.intent_stats(intents)
    assert stats.total == 7
    assert sum(stats.urgency_distribution.values()) == 7
    assert stats.intent_distribution["question"] == 3


def test_analyze_intents_rejects_bad_input():
    with pytest.raises(InvalidInput):
        MessageMind().analyze_intents([{"id": "1"}])


# -- Index -------------------------------------------------------------------


async def test_index_and_search(raw_messages):
    mind = MessageMind(index=VectorIndex(AxisEmbedder(), dimension=2, batch_delay=0))
    report = await mind.index_messages(raw_messages)
    assert report.inserted == 7

    results = await mind.search("dinner plans", k=3)
    assert [r.id for r in results] == ["7"]
    assert mind.index_stats().total_messages == 7
    assert [r.id for r in mind.find_similar("1", k=2)] == ["2", "3"]


async def test_status_reports_degradation(fake_provider, make_message):
    limited = ProviderRateLimited("gemini", "429")
    provider = fake_provider("gemini", {Capability.SUMMARIZE: [limited]})
    registry = ProviderRegistry()
    registry.register(provider)
    orchestrator = AnalysisOrchestrator(registry, retry_base_delay=0, breaker=CircuitBreaker(300))
    mind = MessageMind(orchestrator=orchestrator)

    await mind.analyze_conversations([make_message(minutes=m) for m in (0, 1, 2)])
    await mind.index_messages([make_message("hello world", id="x1")])

    status = mind.status()
    assert status["providers"] == ["gemini"]
    assert "gemini" in status["open_circuits"]
    assert status["embedding_provider"] is None
    assert status["degraded_embeddings"] == 1
