"""Shared JSON-over-HTTP plumbing for the httpx-based adapters."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from messagemind.errors import (
    ProviderBadResponse,
    ProviderTimeout,
    ProviderUnavailable,
    error_for_status,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "MessageMind/1.0 (Conversation Analysis)"


def _error_detail(resp: httpx.Response) -> str:
    """Pull a short human-readable message out of an error response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", ""))[:200]
        if error:
            return str(error)[:200]
    return str(body)[:200]


async def post_json(
    provider: str,
    url: str,
    body: dict[str, Any],
    *,
    timeout: float,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """POST *body* as JSON and return the decoded JSON response.

    Transport and status failures are translated into provider errors. An
    injected *client* is used as-is; otherwise a short-lived client is
    opened for this request.
    """
    request_headers = {"Content-Type": "application/json", "User-Agent": DEFAULT_USER_AGENT}
    request_headers.update(headers or {})

    try:
        if client is not None:
            resp = await client.post(
                url, json=body, headers=request_headers, params=params, timeout=timeout
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as session:
                resp = await session.post(url, json=body, headers=request_headers, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderTimeout(provider, f"request timed out: {exc}") from exc
    except httpx.TransportError as exc:
        raise ProviderUnavailable(provider, f"transport error: {exc}") from exc

    if not resp.is_success:
        logger.debug("%s returned HTTP %d for %s", provider, resp.status_code, url)
        raise error_for_status(provider, resp.status_code, _error_detail(resp))

    try:
        return resp.json()
    except ValueError as exc:
        raise ProviderBadResponse(provider, "response body is not JSON") from exc
