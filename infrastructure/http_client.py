"""JSON-over-HTTP helper shared by the hosted embedding and chat adapters."""
from __future__ import annotations

import logging
from typing import Any

import requests

from domain.errors import ContextTooLargeError, ProviderError, RateLimited, Unauthorized, Unavailable

logger = logging.getLogger(__name__)

_CONTEXT_OVERFLOW_MARKERS = ("context_length_exceeded", "maximum context length", "context window")


def post_json(
    session: requests.Session,
    url: str,
    *,
    provider: str,
    payload: dict[str, Any],
    timeout: float,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """POST ``payload`` and return the decoded JSON body.

    Transport failures and error statuses are translated into the
    ``ProviderError`` family so callers can apply their retry policy.
    """

    try:
        response = session.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.Timeout as exc:
        raise Unavailable(f"{provider} did not answer within {timeout:.1f}s") from exc
    except requests.ConnectionError as exc:
        raise Unavailable(f"{provider} is unreachable: {exc}") from exc
    except requests.RequestException as exc:
        raise ProviderError(f"{provider} request failed: {exc}") from exc

    raise_for_provider_status(response, provider=provider)
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(f"{provider} returned a non-JSON body") from exc


def raise_for_provider_status(response: requests.Response, *, provider: str) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return
    detail = response.text[:500]
    logger.debug("%s answered %d: %s", provider, status, detail)
    if status in (401, 403):
        raise Unauthorized(f"{provider} rejected the credentials ({status})")
    if status == 429:
        raise RateLimited(f"{provider} rate limit hit ({status})")
    if status in (400, 413) and any(marker in detail.lower() for marker in _CONTEXT_OVERFLOW_MARKERS):
        raise ContextTooLargeError(f"{provider} refused the prompt as too long: {detail}")
    if status == 408 or status >= 500:
        raise Unavailable(f"{provider} unavailable ({status})")
    raise ProviderError(f"{provider} rejected the request ({status}): {detail}")


__all__ = ["post_json", "raise_for_provider_status"]
