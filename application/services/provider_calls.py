"""Timeout and retry policy for calls to external providers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from application.config import RetryPolicy
from domain.errors import Unavailable, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderCaller:
    """Runs blocking provider calls off the event loop.

    Every attempt gets its own timeout; a timeout counts as ``Unavailable``.
    ``RateLimited``, ``Unavailable`` and retryable ``FetchError`` are retried
    with exponential backoff, anything else is raised immediately.
    """

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        self.policy = policy or RetryPolicy()

    async def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        timeout: float,
        operation: str,
    ) -> T:
        return await self.retrying(operation)(self._attempt, fn, args, timeout, operation)

    def retrying(self, operation: str) -> AsyncRetrying:
        """Build the retry controller of one call from ``self.policy``."""
        return AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_exponential_jitter(
                multiplier=self.policy.initial_delay,
                max=self.policy.max_delay,
                jitter=self.policy.jitter,
            ),
            before_sleep=self._log_retry(operation),
            reraise=True,
        )

    @staticmethod
    async def _attempt(fn: Callable[..., T], args: tuple[Any, ...], timeout: float, operation: str) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise Unavailable(f"{operation} timed out after {timeout:.1f}s") from exc

    def _log_retry(self, operation: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s attempt %d/%d failed (%s: %s); retrying in %.2fs",
                operation,
                retry_state.attempt_number,
                self.policy.max_attempts,
                getattr(exc, "kind", type(exc).__name__),
                exc,
                delay,
            )

        return before_sleep


__all__ = ["ProviderCaller"]
