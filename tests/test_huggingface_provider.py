"""Tests for the Hugging Face summarization and sentiment adapter."""

import json

import httpx
import pytest

from messagemind.errors import ProviderBadResponse, ProviderUnavailable
from messagemind.models import Sentiment
from messagemind.providers.base import AnalysisPayload, Capability
from messagemind.providers.huggingface import HuggingFaceAdapter, sentiment_from_label

PAYLOAD = AnalysisPayload(
    text="alice: " + "The plumber comes on Tuesday to fix the kitchen tap. " * 40,
    participants=["alice"],
    message_count=1,
)


def _adapter(handler) -> HuggingFaceAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HuggingFaceAdapter(
        "hf-key",
        summarization_model="org/summarizer",
        sentiment_model="org/sentiment",
        base_url="https://hf.test/models",
        client=client,
    )


async def test_summarize_request_and_reply() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"summary_text": "The plumber fixes the tap on Tuesday."}])

    result = await _adapter(handler).call(Capability.SUMMARIZE, PAYLOAD)

    assert result.value == "The plumber fixes the tap on Tuesday."
    (request,) = seen
    assert request.url.path == "/models/org/summarizer"
    assert request.headers["Authorization"] == "Bearer hf-key"
    body = json.loads(request.content)
    assert len(body["inputs"]) == 1000
    assert body["parameters"] == {"max_length": 100, "min_length": 20, "do_sample": False}
    assert body["options"]["wait_for_model"] is True


async def test_short_summary_rejected() -> None:
    adapter = _adapter(lambda r: httpx.Response(200, json=[{"summary_text": "Tap."}]))
    with pytest.raises(ProviderBadResponse, match="too short"):
        await adapter.call(Capability.SUMMARIZE, PAYLOAD)


async def test_sentiment_picks_highest_score() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[[
                {"label": "negative", "score": 0.1},
                {"label": "neutral", "score": 0.3},
                {"label": "positive", "score": 0.6},
            ]],
        )

    result = await _adapter(handler).call(Capability.SENTIMENT, PAYLOAD)

    assert result.value is Sentiment.POSITIVE
    assert seen[0].url.path == "/models/org/sentiment"
    assert len(json.loads(seen[0].content)["inputs"]) == 500


async def test_sentiment_without_labels() -> None:
    adapter = _adapter(lambda r: httpx.Response(200, json={"error": "loading"}))
    with pytest.raises(ProviderBadResponse, match="no labels"):
        await adapter.call(Capability.SENTIMENT, PAYLOAD)


async def test_model_not_found_is_terminal() -> None:
    adapter = _adapter(lambda r: httpx.Response(404, json={"error": "Model not found"}))
    with pytest.raises(ProviderUnavailable) as exc_info:
        await adapter.call(Capability.SUMMARIZE, PAYLOAD)
    assert exc_info.value.terminal


async def test_topics_not_supported() -> None:
    adapter = _adapter(lambda r: httpx.Response(200, json=[]))
    assert not adapter.supports(Capability.TOPICS)
    with pytest.raises(ProviderUnavailable):
        await adapter.call(Capability.TOPICS, PAYLOAD)


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("POSITIVE", Sentiment.POSITIVE),
        ("negative", Sentiment.NEGATIVE),
        ("neutral", Sentiment.NEUTRAL),
        ("LABEL_0", Sentiment.NEGATIVE),
        ("LABEL_1", Sentiment.NEUTRAL),
        ("LABEL_2", Sentiment.POSITIVE),
        ("1 star", Sentiment.NEGATIVE),
        ("3 stars", Sentiment.NEUTRAL),
        ("5 stars", Sentiment.POSITIVE),
        ("surprise", None),
    ],
)
def test_sentiment_from_label(label, expected) -> None:
    assert sentiment_from_label(label) == expected
