"""Error taxonomy for provider calls and input validation.

Provider errors are always recoverable: the analysis cascade absorbs them
and moves on to the next provider or to the heuristic engine. Only
``InvalidInput`` and ``ConfigurationError`` ever reach a caller.
"""

from __future__ import annotations


class MessageMindError(Exception):
    """Base class for every error raised by this package."""


class ProviderError(MessageMindError):
    """A provider call failed.

    Attributes:
        provider: Name of the adapter that failed.
        status_code: HTTP status when the failure came from a response.
        terminal: True for failures that retrying cannot fix (quota,
            auth, unknown model). The orchestrator stops retrying and opens
            the provider's circuit breaker immediately.
    """

    kind = "provider_error"

    def __init__(
        self,
        provider: str,
        message: str = "",
        *,
        status_code: int | None = None,
        terminal: bool = False,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.terminal = terminal
        super().__init__(f"{provider}: {message}" if message else provider)


class ProviderUnavailable(ProviderError):
    kind = "unavailable"


class ProviderRateLimited(ProviderError):
    kind = "rate_limited"


class ProviderTimeout(ProviderError):
    kind = "timeout"


class ProviderBadResponse(ProviderError):
    kind = "bad_response"


class InvalidInput(MessageMindError, ValueError):
    """Malformed input rejected at the API boundary."""


class ConfigurationError(MessageMindError):
    """Settings name something that cannot be built."""


def error_for_status(provider: str, status_code: int, detail: str = "") -> ProviderError:
    """Translate a non-2xx HTTP status into the matching provider error."""
    message = f"HTTP {status_code}" + (f": {detail}" if detail else "")
    if status_code == 429:
        return ProviderRateLimited(provider, message, status_code=status_code)
    if status_code == 402:
        # Payment required: quota is gone for this billing period.
        return ProviderRateLimited(provider, message, status_code=status_code, terminal=True)
    if status_code in (401, 403):
        return ProviderBadResponse(provider, message, status_code=status_code, terminal=True)
    if status_code == 404:
        return ProviderUnavailable(provider, message, status_code=status_code, terminal=True)
    if status_code in (503, 504):
        return ProviderUnavailable(provider, message, status_code=status_code)
    return ProviderBadResponse(provider, message, status_code=status_code)
