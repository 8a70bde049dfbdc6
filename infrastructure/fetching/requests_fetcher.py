"""Fetcher that downloads the source page with ``requests``."""
from __future__ import annotations

import logging

import requests

from domain.errors import FetchError, Unavailable
from domain.interfaces import Fetcher

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; newsdigest/0.1)"

# Client errors worth retrying; every other 4xx is final.
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 425, 429})


class RequestsFetcher(Fetcher):
    """GET a URL and return its body; non-2xx statuses raise ``FetchError``."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self._session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        logger.debug("GET %s", url)
        try:
            response = self._session.get(url, headers=self._headers, timeout=self._timeout)
        except requests.Timeout as exc:
            raise Unavailable(f"fetching {url} timed out after {self._timeout:.1f}s") from exc
        except requests.RequestException as exc:
            raise FetchError(f"fetching {url} failed: {exc}") from exc

        status = response.status_code
        if not 200 <= status < 300:
            retryable = status >= 500 or status in _RETRYABLE_CLIENT_STATUSES
            raise FetchError(f"GET {url} returned {status}", status=status, retryable=retryable)
        return response.content


__all__ = ["RequestsFetcher"]
