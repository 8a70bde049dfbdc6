import time
import unittest
import warnings

from application.config import RetryPolicy
from application.services.provider_calls import ProviderCaller
from domain.errors import FetchError, RateLimited, Unauthorized, Unavailable


class _Flaky:
    def __init__(self, *failures: Exception) -> None:
        self.failures = list(failures)
        self.calls = 0

    def __call__(self, value: str) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value.upper()


class TestProviderCaller(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.caller = ProviderCaller(RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0, jitter=0.0))

    async def test_retries_rate_limits_until_success(self) -> None:
        fn = _Flaky(RateLimited("slow down"), Unavailable("503"))
        result = await self.caller.call(fn, "ok", timeout=1.0, operation="test")
        self.assertEqual(result, "OK")
        self.assertEqual(fn.calls, 3)

    async def test_gives_up_after_max_attempts(self) -> None:
        fn = _Flaky(RateLimited("1"), RateLimited("2"), RateLimited("3"), RateLimited("4"))
        with self.assertRaises(RateLimited):
            await self.caller.call(fn, "ok", timeout=1.0, operation="test")
        self.assertEqual(fn.calls, 3)

    async def test_unauthorized_is_not_retried(self) -> None:
        fn = _Flaky(Unauthorized("bad key"))
        with self.assertRaises(Unauthorized):
            await self.caller.call(fn, "ok", timeout=1.0, operation="test")
        self.assertEqual(fn.calls, 1)

    async def test_fetch_errors_follow_their_retryable_flag(self) -> None:
        fn = _Flaky(FetchError("503", status=503), FetchError("404", status=404, retryable=False))
        with self.assertRaises(FetchError) as ctx:
            await self.caller.call(fn, "ok", timeout=1.0, operation="fetch")
        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(fn.calls, 2)

    async def test_timeout_becomes_unavailable(self) -> None:
        calls = []

        def slow() -> str:
            calls.append(1)
            time.sleep(0.2)
            return "late"

        caller = ProviderCaller(RetryPolicy(max_attempts=2, initial_delay=0.0, max_delay=0.0, jitter=0.0))
        with self.assertRaises(Unavailable):
            await caller.call(slow, timeout=0.05, operation="slow")
        self.assertEqual(len(calls), 2)

    def test_backoff_is_built_from_the_policy_without_deprecated_arguments(self) -> None:
        policy = RetryPolicy(max_attempts=5, initial_delay=0.5, max_delay=8.0, jitter=0.25)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            retrying = ProviderCaller(policy).retrying("embed batch 1")

        self.assertEqual(retrying.wait.multiplier, 0.5)
        self.assertEqual(retrying.wait.max, 8.0)
        self.assertEqual(retrying.wait.jitter, 0.25)
        self.assertEqual(retrying.stop.max_attempt_number, 5)


if __name__ == "__main__":
    unittest.main()
