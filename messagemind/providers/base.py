"""Base types for provider adapters.

Every remote AI integration implements ``ProviderAdapter``: it declares the
capabilities it serves and turns one request into a ``NormalizedResult`` or
one of the four ``ProviderError`` kinds. Retry policy lives in the
orchestrator, not here.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from messagemind.config import settings
from messagemind.errors import ProviderTimeout, ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Capability(StrEnum):
    SUMMARIZE = "summarize"
    SENTIMENT = "sentiment"
    TOPICS = "topics"
    INSIGHTS = "insights"
    PATTERNS = "patterns"
    ACTION_ITEMS = "action_items"
    PRIORITY = "priority"
    EMBED = "embed"


# Capabilities that make up one AnalysisResult, in cascade order.
ANALYSIS_CAPABILITIES: tuple[Capability, ...] = (
    Capability.SUMMARIZE,
    Capability.SENTIMENT,
    Capability.TOPICS,
    Capability.INSIGHTS,
    Capability.PATTERNS,
    Capability.ACTION_ITEMS,
    Capability.PRIORITY,
)


@dataclass
class CallOptions:
    """Per-call limits.

    Attributes:
        timeout: Upper bound for a single call, in seconds.
        deadline: Absolute ``time.monotonic()`` value after which no call
            may run. Shared by every call of an orchestration run.
        cancel_event: Set by the caller to abandon in-flight calls.
    """

    timeout: float = field(default_factory=lambda: settings.provider_timeout_seconds)
    deadline: float | None = None
    cancel_event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def remaining(self) -> float:
        """Seconds this call may run for."""
        if self.deadline is None:
            return self.timeout
        return min(self.timeout, self.deadline - time.monotonic())


@dataclass
class AnalysisPayload:
    """Provider input for one conversation unit."""

    text: str
    participants: list[str]
    message_count: int
    room_label: str = ""


@dataclass
class NormalizedResult:
    """A provider answer already decoded into the capability's value type."""

    provider: str
    capability: Capability
    value: Any


async def run_with_deadline(
    awaitable: Awaitable[T],
    options: CallOptions,
    *,
    provider: str,
) -> T:
    """Await *awaitable* within the call budget.

    Raises ``ProviderTimeout`` when the budget runs out or the cancel event
    fires first. The abandoned call is cancelled.
    """
    task = asyncio.ensure_future(awaitable)
    if options.cancelled:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        msg = "call cancelled before it started"
        raise ProviderTimeout(provider, msg)

    remaining = options.remaining()
    if remaining <= 0:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        msg = "deadline already passed"
        raise ProviderTimeout(provider, msg)

    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if options.cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(options.cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _pending = await asyncio.wait(
            waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        leftovers = [w for w in waiters if not w.done()]
        for waiter in leftovers:
            waiter.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)

    if task in done:
        return task.result()
    if cancel_waiter is not None and cancel_waiter in done:
        msg = "call cancelled by caller"
        raise ProviderTimeout(provider, msg)
    msg = f"no response within {remaining:.1f}s"
    raise ProviderTimeout(provider, msg)


class ProviderAdapter(ABC):
    """Abstract base for one external AI provider.

    Subclasses set ``name`` and ``capabilities`` and implement
    ``_invoke``. Example::

        class EchoAdapter(ProviderAdapter):
            name = "echo"
            capabilities = frozenset({Capability.SUMMARIZE})

            async def _invoke(self, capability, payload, options):
                return payload.text
    """

    name: str = ""
    capabilities: frozenset[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def call(
        self,
        capability: Capability,
        payload: AnalysisPayload | list[str],
        options: CallOptions | None = None,
    ) -> NormalizedResult:
        """Run one request for *capability* within the options' budget."""
        if not self.supports(capability):
            msg = f"capability '{capability}' is not supported"
            raise ProviderUnavailable(self.name, msg)
        options = options or CallOptions()
        value = await run_with_deadline(
            self._invoke(capability, payload, options), options, provider=self.name
        )
        return NormalizedResult(provider=self.name, capability=capability, value=value)

    @abstractmethod
    async def _invoke(
        self,
        capability: Capability,
        payload: AnalysisPayload | list[str],
        options: CallOptions,
    ) -> Any:
        """Perform the provider request and return the decoded value."""
        ...
