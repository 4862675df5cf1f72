"""Tests for the in-memory vector index."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest

from messagemind.errors import InvalidInput, ProviderUnavailable
from messagemind.index.vector_store import (
    VectorIndex,
    cosine_similarities,
    is_system_message,
    normalize_room,
    normalize_sender,
)
from messagemind.providers.base import Capability, ProviderAdapter

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)

_AXES = {"dog": 0, "cat": 1, "tap": 2}


class KeywordEmbedder(ProviderAdapter):
    """Maps each text onto the axis of the first keyword it contains."""

    name = "keyword"
    capabilities = frozenset({Capability.EMBED})

    def __init__(self) -> None:
        self.batches: list[list[str]] = []

    async def _invoke(self, capability, payload, options):
        self.batches.append(list(payload))
        vectors = []
        for text in payload:
            vector = [0.0, 0.0, 0.0, 0.1]
            for word, axis in _AXES.items():
                if word in text.lower():
                    vector[axis] = 1.0
                    break
            vectors.append(vector)
        return vectors


class BrokenEmbedder(ProviderAdapter):
    name = "broken"
    capabilities = frozenset({Capability.EMBED})

    async def _invoke(self, capability, payload, options):
        raise ProviderUnavailable(self.name, "HTTP 503")


class MisbehavingEmbedder(ProviderAdapter):
    """Answers every batch through *reply*, which may raise or return junk."""

    name = "misbehaving"
    capabilities = frozenset({Capability.EMBED})

    def __init__(self, reply) -> None:
        self.reply = reply

    async def _invoke(self, capability, payload, options):
        return self.reply(payload)


def _raise_sdk_bug(texts):
    raise RuntimeError("sdk bug")


def _item(id: str, content: str, **overrides) -> dict:
    item = {
        "id": id,
        "content": content,
        "sender": "@alice:matrix.org",
        "room_label": "Family",
        "timestamp": BASE_TIME,
    }
    item.update(overrides)
    return item


def _index(embedder: ProviderAdapter | None = None, **kwargs) -> VectorIndex:
    kwargs.setdefault("dimension", 4)
    kwargs.setdefault("batch_delay", 0)
    kwargs.setdefault("rng", np.random.default_rng(42))
    return VectorIndex(embedder, **kwargs)


# -- Normalization helpers ---------------------------------------------------


@pytest.mark.parametrize(
    "content",
    ["!help", "Alice bridged the room", "Message from WhatsApp bridge bot"],
)
def test_system_messages(content):
    assert is_system_message(content)


def test_regular_message_is_not_system():
    assert not is_system_message("See you at dinner!")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("@alice:matrix.org", "alice"),
        ("@whatsapp_4915123:bridge.example", "4915123"),
        ("bob", "bob"),
    ],
)
def test_normalize_sender(raw, expected):
    assert normalize_sender(raw) == expected


def test_normalize_room():
    assert normalize_room("Mum (WA)") == "Mum"
    assert normalize_room("Work (WA) chat") == "Work (WA) chat"


def test_cosine_handles_zero_vectors():
    matrix = np.array([[1.0, 0.0], [0.0, 0.0], [-1.0, 0.0]])
    scores = cosine_similarities(np.array([1.0, 0.0]), matrix)
    assert scores.tolist() == [1.0, 0.0, -1.0]


# -- Insert ------------------------------------------------------------------


async def test_insert_reports_counts():
    index = _index(KeywordEmbedder())
    report = await index.insert(
        [
            _item("1", "my dog is sick"),
            _item("2", "ok"),
            _item("3", "!ping"),
            _item("4", "the cat sleeps"),
            _item("4", "the cat sleeps again"),
        ]
    )
    assert report.inserted == 2
    assert report.skipped_invalid == 2
    assert report.skipped_duplicate == 1
    assert report.degraded == 0
    assert len(index) == 2


async def test_insert_skips_ids_already_stored():
    index = _index(KeywordEmbedder())
    await index.insert([_item("1", "my dog is sick")])
    report = await index.insert([_item("1", "my dog is sick"), _item("2", "the cat sleeps")])
    assert report.inserted == 1
    assert report.skipped_duplicate == 1
    assert index.stats().total_messages == 2


async def test_insert_normalizes_metadata():
    index = _index(KeywordEmbedder())
    await index.insert(
        [_item("1", "walk the dog", sender="@whatsapp_bob:wa.example", room_label="Bob (WA)")]
    )
    (result,) = await index.search("dog")
    assert result.metadata.sender == "bob"
    assert result.metadata.room_label == "Bob"
    assert result.metadata.source_type == "whatsapp"


async def test_insert_accepts_messages(make_message):
    index = _index(KeywordEmbedder())
    report = await index.insert([make_message("feed the cat")])
    assert report.inserted == 1


async def test_insert_embeds_in_batches():
    embedder = KeywordEmbedder()
    index = _index(embedder, batch_size=2)
    await index.insert([_item(str(i), f"message number {i}") for i in range(5)])
    assert [len(b) for b in embedder.batches] == [2, 2, 1]


async def test_insert_waits_between_batches():
    index = _index(KeywordEmbedder(), batch_size=2, batch_delay=0.1)
    with patch("messagemind.index.vector_store.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        await index.insert([_item(str(i), f"message number {i}") for i in range(5)])
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.1]


@pytest.mark.parametrize("batch", ["not a list", {"id": "1"}, 5])
async def test_insert_rejects_non_sequence(batch):
    index = _index()
    with pytest.raises(InvalidInput):
        await index.insert(batch)


async def test_insert_is_all_or_nothing():
    index = _index(KeywordEmbedder())
    with pytest.raises(InvalidInput, match="position 1"):
        await index.insert([_item("1", "my dog is sick"), {"id": "2", "content": "no sender"}])
    assert len(index) == 0


# -- Fallback vectors --------------------------------------------------------


async def test_without_embedder_uses_random_vectors(caplog):
    index = _index()
    with caplog.at_level("WARNING", logger="messagemind.index.vector_store"):
        report = await index.insert([_item("1", "my dog is sick"), _item("2", "the cat sleeps")])

    assert report.degraded == 2
    stats = index.stats()
    assert stats.degraded_embeddings == 2
    assert stats.embedding_provider is None
    assert any("random vectors" in r.getMessage() for r in caplog.records)
    for vector in (r.embedding for r in index._records):
        assert len(vector) == 4
        assert all(-0.5 <= v < 0.5 for v in vector)


async def test_failed_batch_falls_back_to_random_vectors():
    index = _index(BrokenEmbedder())
    report = await index.insert([_item("1", "my dog is sick")])
    assert report.inserted == 1
    assert report.degraded == 1
    assert index.degraded_count == 1


@pytest.mark.parametrize(
    "reply",
    [
        _raise_sdk_bug,
        lambda texts: [[1.0, 0.0, 0.0, 0.0]] * (len(texts) - 1),
        lambda texts: [[1.0, 0.0, 0.0]] * len(texts),
        lambda texts: [[1.0, 0.0, float("nan"), 0.0]] * len(texts),
        lambda texts: [["a", "b", "c", "d"]] * len(texts),
        lambda texts: None,
    ],
    ids=["raises", "too-few", "wrong-dimension", "nan", "non-numeric", "none"],
)
async def test_bad_embedder_replies_fall_back_to_random_vectors(reply, caplog):
    index = _index(MisbehavingEmbedder(reply), batch_size=2)
    items = [_item(str(i), f"message number {i}") for i in range(4)]

    with caplog.at_level("WARNING", logger="messagemind.index.vector_store"):
        report = await index.insert(items)
        results = await index.search("message", k=4)

    assert report.inserted == 4
    assert report.degraded == 4
    assert len(index) == 4
    assert all(len(r.embedding) == 4 for r in index._records)
    assert len(results) <= 4
    assert any("random vectors" in r.getMessage() for r in caplog.records)


# -- Search ------------------------------------------------------------------


async def test_search_ranks_by_similarity():
    index = _index(KeywordEmbedder())
    await index.insert(
        [
            _item("1", "the cat sleeps"),
            _item("2", "my dog is sick"),
            _item("3", "the dog barks at the cat"),
            _item("4", "fix the tap"),
        ]
    )
    results = await index.search("where is the dog")
    assert [r.id for r in results] == ["2", "3"]
    assert results[0].similarity == pytest.approx(1.0)


async def test_search_applies_similarity_floor():
    index = _index(KeywordEmbedder(), similarity_floor=0.5)
    await index.insert([_item("1", "the cat sleeps"), _item("2", "plain words here")])
    results = await index.search("some other text")
    assert [r.id for r in results] == ["2"]


async def test_search_limits_results():
    index = _index(KeywordEmbedder())
    await index.insert([_item(str(i), f"dog number {i}") for i in range(5)])
    results = await index.search("dog", k=3)
    assert [r.id for r in results] == ["0", "1", "2"]


async def test_search_non_positive_k():
    index = _index(KeywordEmbedder())
    await index.insert([_item("1", "my dog is sick")])
    assert await index.search("dog", k=0) == []
    assert await index.search("dog", k=-1) == []


async def test_search_empty_index():
    assert await _index(KeywordEmbedder()).search("dog") == []


async def test_search_with_random_vectors_is_sorted():
    index = _index(dimension=16, similarity_floor=-1.0)
    await index.insert([_item(str(i), f"message number {i}") for i in range(20)])
    results = await index.search("", k=20)
    similarities = [r.similarity for r in results]
    assert similarities == sorted(similarities, reverse=True)
    assert all(-1.0 <= s <= 1.0 for s in similarities)
    assert len(results) == 20


# -- Similar records ---------------------------------------------------------


async def test_find_similar_excludes_itself():
    index = _index(KeywordEmbedder())
    await index.insert(
        [_item("1", "my dog is sick"), _item("2", "the dog barks"), _item("3", "the cat sleeps")]
    )
    results = index.find_similar("1", k=5)
    assert [r.id for r in results] == ["2", "3"]
    # no similarity floor for neighbours of a stored record
    assert results[1].similarity < 0.1


async def test_find_similar_unknown_id():
    index = _index(KeywordEmbedder())
    await index.insert([_item("1", "my dog is sick")])
    assert index.find_similar("missing") == []
    assert index.find_similar("1") == []


# -- Stats and clear ---------------------------------------------------------


async def test_stats_aggregates():
    index = _index(KeywordEmbedder())
    await index.insert(
        [
            _item("1", "my dog is sick", timestamp=BASE_TIME + timedelta(hours=2)),
            _item("2", "the cat sleeps", room_label="Work (WA)", source_type="matrix"),
            _item("3", "fix the tap", timestamp=BASE_TIME - timedelta(days=1)),
        ]
    )
    stats = index.stats()
    assert stats.total_messages == 3
    assert stats.messages_by_room == {"Family": 2, "Work": 1}
    assert stats.messages_by_type == {"whatsapp": 2, "matrix": 1}
    assert stats.oldest_message == BASE_TIME - timedelta(days=1)
    assert stats.newest_message == BASE_TIME + timedelta(hours=2)
    assert stats.embedding_provider == "keyword"


def test_stats_empty():
    stats = _index().stats()
    assert stats.total_messages == 0
    assert stats.oldest_message is None
    assert stats.newest_message is None


async def test_clear():
    index = _index()
    await index.insert([_item("1", "my dog is sick")])
    index.clear()
    assert len(index) == 0
    assert index.degraded_count == 0
    report = await index.insert([_item("1", "my dog is sick")])
    assert report.inserted == 1
