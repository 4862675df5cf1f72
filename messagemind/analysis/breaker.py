"""Per-provider circuit breaker with a time-boxed reset."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class _State:
    opened_at: float
    reason: str


class CircuitBreaker:
    """Tracks which providers are currently skipped.

    A provider is tripped after a terminal error or after its retries are
    exhausted. It stays open for ``cooldown`` seconds, then closes on the
    next check so the provider gets another chance.
    """

    def __init__(self, cooldown: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._cooldown = cooldown
        self._clock = clock
        self._open: dict[str, _State] = {}

    def is_open(self, provider: str) -> bool:
        state = self._open.get(provider)
        if state is None:
            return False
        if self._clock() - state.opened_at >= self._cooldown:
            logger.info("Circuit for %s closed after %.0fs cooldown", provider, self._cooldown)
            del self._open[provider]
            return False
        return True

    def trip(self, provider: str, reason: str) -> None:
        if provider not in self._open:
            logger.warning("Circuit for %s opened: %s", provider, reason)
        self._open[provider] = _State(opened_at=self._clock(), reason=reason)

    def record_success(self, provider: str) -> None:
        self._open.pop(provider, None)

    def reset(self, provider: str | None = None) -> None:
        """Close one circuit, or all of them."""
        if provider is None:
            self._open.clear()
        else:
            self._open.pop(provider, None)

    def open_circuits(self) -> dict[str, str]:
        """Map of currently open providers to the reason they were tripped."""
        return {
            name: state.reason for name, state in list(self._open.items()) if self.is_open(name)
        }
