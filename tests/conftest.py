"""Shared test fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from messagemind.models import Message
from messagemind.providers.base import Capability, ProviderAdapter
from messagemind.service import MessageMind

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)


class FakeProvider(ProviderAdapter):
    """Scripted adapter: each call pops the next outcome for its capability.

    An outcome is either a value to return or an exception to raise. The
    last outcome repeats once the script runs out.
    """

    def __init__(
        self,
        name: str,
        outcomes: dict[Capability, list[Any]],
        capabilities: frozenset[Capability] | None = None,
    ) -> None:
        self.name = name
        self.capabilities = capabilities or frozenset(outcomes)
        self._outcomes = {cap: list(seq) for cap, seq in outcomes.items()}
        self.calls: list[Capability] = []

    async def _invoke(self, capability, payload, options):
        self.calls.append(capability)
        script = self._outcomes[capability]
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory for messages offset in minutes from a fixed base time."""
    counter = iter(range(1, 10_000))

    def _make(
        content: str = "hello there",
        *,
        sender: str = "alice",
        room: str = "Family",
        minutes: float = 0,
        id: str | None = None,
    ) -> Message:
        return Message(
            id=id or f"m{next(counter)}",
            content=content,
            sender=sender,
            room_label=room,
            timestamp=BASE_TIME + timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_service():
    MessageMind._reset()
    yield
    MessageMind._reset()
