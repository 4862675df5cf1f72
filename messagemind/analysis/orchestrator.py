"""Analysis orchestrator: the provider cascade for conversation units.

For every capability of an ``AnalysisResult`` the orchestrator walks the
registry's providers in order, retrying each with exponential backoff,
and falls through to the heuristic engine when all of them fail. Provider
errors are logged and absorbed here; callers always get a full result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from messagemind.analysis.breaker import CircuitBreaker
from messagemind.analysis.heuristics import HeuristicEngine
from messagemind.config import settings
from messagemind.errors import ProviderError
from messagemind.models import AnalysisResult, ConversationUnit, Priority, Sentiment
from messagemind.providers.base import (
    ANALYSIS_CAPABILITIES,
    AnalysisPayload,
    CallOptions,
    Capability,
    ProviderAdapter,
)
from messagemind.providers.registry import ProviderRegistry
from messagemind.segmenter import format_transcript

logger = logging.getLogger(__name__)

HEURISTIC_SOURCE = "heuristic"

_LIST_LIMITS: dict[Capability, int] = {
    Capability.TOPICS: 5,
    Capability.INSIGHTS: 3,
    Capability.PATTERNS: 3,
    Capability.ACTION_ITEMS: 3,
}


def build_payload(unit: ConversationUnit, max_messages: int | None = None) -> AnalysisPayload:
    """Provider input for one unit: the recent transcript plus its shape."""
    return AnalysisPayload(
        text=format_transcript(unit.messages, max_messages),
        participants=sorted(unit.participants),
        message_count=unit.message_count,
        room_label=unit.room_label,
    )


def rank_by_priority(results: Iterable[AnalysisResult]) -> list[AnalysisResult]:
    """Sort by priority weight, highest first. Stable: ties keep input order."""
    return sorted(results, key=lambda r: r.priority.weight, reverse=True)


def _abandoned(options: CallOptions | None) -> bool:
    """True once the caller has cancelled the run or its deadline has passed."""
    return options is not None and (options.cancelled or options.remaining() <= 0)


def _normalize_value(capability: Capability, value: Any) -> Any | None:
    """Coerce a provider value to the field's type, or None if it cannot be."""
    if capability is Capability.SUMMARIZE:
        return value.strip() if isinstance(value, str) and value.strip() else None
    if capability is Capability.SENTIMENT:
        try:
            return Sentiment(value)
        except ValueError:
            return None
    if capability is Capability.PRIORITY:
        try:
            return Priority(value)
        except ValueError:
            return None
    if capability in _LIST_LIMITS:
        if not isinstance(value, list):
            return None
        items = [str(v).strip() for v in value if str(v).strip()]
        if not items and capability is not Capability.ACTION_ITEMS:
            return None
        return items[: _LIST_LIMITS[capability]]
    return None


class AnalysisOrchestrator:
    """Runs the provider cascade for conversation units.

    Args:
        registry: Providers to try, in cascade order. Empty means
            heuristics only.
        heuristics: Fallback engine.
        breaker: Per-provider circuit breaker. One is created with the
            configured cooldown when omitted.
        retry_attempts: Attempts per provider per capability.
        retry_base_delay: Backoff base in seconds; attempt ``n`` (from 0)
            waits ``base * 2**n`` before the next try.
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        *,
        heuristics: HeuristicEngine | None = None,
        breaker: CircuitBreaker | None = None,
        retry_attempts: int | None = None,
        retry_base_delay: float | None = None,
        max_prompt_messages: int | None = None,
    ) -> None:
        self._registry = registry if registry is not None else ProviderRegistry()
        self._heuristics = heuristics or HeuristicEngine()
        self._breaker = breaker or CircuitBreaker(settings.provider_cooldown_seconds)
        self._retry_attempts = retry_attempts or settings.retry_attempts
        if retry_base_delay is None:
            retry_base_delay = settings.retry_base_delay_ms / 1000
        self._retry_base_delay = retry_base_delay
        self._max_prompt_messages = max_prompt_messages or settings.max_prompt_messages

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def analyze(
        self,
        units: Sequence[ConversationUnit],
        *,
        options: CallOptions | None = None,
    ) -> list[AnalysisResult]:
        """Analyze units in order and return results ranked by priority."""
        results = [await self.analyze_unit(unit, options=options) for unit in units]
        return rank_by_priority(results)

    async def analyze_unit(
        self,
        unit: ConversationUnit,
        *,
        options: CallOptions | None = None,
    ) -> AnalysisResult:
        """Produce the merged analysis for one unit. Never raises for provider trouble."""
        payload = build_payload(unit, self._max_prompt_messages)
        values: dict[Capability, Any] = {}
        sources: dict[str, str] = {}

        for capability in ANALYSIS_CAPABILITIES:
            values[capability], sources[capability.value] = await self.resolve(
                capability, unit, options=options, payload=payload
            )

        fallbacks = [name for name, source in sources.items() if source == HEURISTIC_SOURCE]
        logger.info(
            "Analyzed %s (%d messages); heuristic fields: %s",
            unit.room_label,
            unit.message_count,
            ", ".join(fallbacks) or "none",
        )

        return AnalysisResult(
            date=unit.started_at.date().isoformat(),
            room_label=unit.room_label,
            message_count=unit.message_count,
            participants=sorted(unit.participants),
            summary=values[Capability.SUMMARIZE],
            key_topics=values[Capability.TOPICS],
            sentiment=values[Capability.SENTIMENT],
            priority=values[Capability.PRIORITY],
            insights=values[Capability.INSIGHTS],
            patterns=values[Capability.PATTERNS],
            action_items=values[Capability.ACTION_ITEMS],
            sources=sources,
        )

    async def resolve(
        self,
        capability: Capability,
        unit: ConversationUnit,
        *,
        options: CallOptions | None = None,
        payload: AnalysisPayload | None = None,
    ) -> tuple[Any, str]:
        """One capability's value for *unit* and the name of its source."""
        if payload is None:
            payload = build_payload(unit, self._max_prompt_messages)
        outcome = await self._cascade(capability, payload, options)
        if outcome is None:
            return self._heuristics.evaluate(capability, unit), HEURISTIC_SOURCE
        return outcome

    async def _cascade(
        self,
        capability: Capability,
        payload: AnalysisPayload,
        options: CallOptions | None,
    ) -> tuple[Any, str] | None:
        """First usable provider value for *capability*, or None."""
        for provider in self._registry.for_capability(capability):
            if _abandoned(options):
                logger.debug("Run abandoned; %s falls back to heuristics", capability)
                return None
            if self._breaker.is_open(provider.name):
                logger.debug("Skipping %s for %s: circuit open", provider.name, capability)
                continue
            value = await self._attempt(provider, capability, payload, options)
            if value is not None:
                return value, provider.name
        return None

    async def _attempt(
        self,
        provider: ProviderAdapter,
        capability: Capability,
        payload: AnalysisPayload,
        options: CallOptions | None,
    ) -> Any | None:
        """Call one provider with retries. Returns None once it is given up on."""
        attempts = self._retry_attempts
        for attempt in range(attempts):
            try:
                result = await provider.call(capability, payload, options)
            except ProviderError as exc:
                logger.warning(
                    "%s failed for %s (attempt %d/%d, %s): %s",
                    provider.name,
                    capability,
                    attempt + 1,
                    attempts,
                    exc.kind,
                    exc,
                )
                if exc.terminal:
                    self._breaker.trip(provider.name, f"{exc.kind} on {capability}")
                    return None
            except Exception:
                logger.exception(
                    "%s raised unexpectedly for %s (attempt %d/%d)",
                    provider.name,
                    capability,
                    attempt + 1,
                    attempts,
                )
                return None
            else:
                value = _normalize_value(capability, result.value)
                if value is not None:
                    self._breaker.record_success(provider.name)
                    return value
                logger.warning(
                    "%s returned an unusable %s value (attempt %d/%d)",
                    provider.name,
                    capability,
                    attempt + 1,
                    attempts,
                )

            # caller abandonment never trips the breaker
            if _abandoned(options):
                logger.info(
                    "Abandoning %s for %s: run cancelled or out of time",
                    provider.name,
                    capability,
                )
                return None
            if attempt + 1 < attempts:
                await asyncio.sleep(self._retry_base_delay * 2**attempt)

        self._breaker.trip(provider.name, f"retries exhausted on {capability}")
        return None
