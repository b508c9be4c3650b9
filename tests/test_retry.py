"""Tests for conductor.core.retry.

Covers: is_transient classification, retry_with_backoff success after
transient failures, immediate propagation of non-transient errors,
exhaustion, per-attempt timeout, and the backoff schedule.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conductor.core.retry import (
    RetryExhaustedError,
    TransientError,
    is_transient,
    retry_with_backoff,
)


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test/v1")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestIsTransient:

    @pytest.mark.parametrize("code", [408, 429, 500, 502, 503, 504])
    def test_retryable_statuses(self, code: int) -> None:
        assert is_transient(_status_error(code)) is True

    @pytest.mark.parametrize("code", [400, 401, 403, 404, 422])
    def test_client_errors_not_retried(self, code: int) -> None:
        assert is_transient(_status_error(code)) is False

    def test_network_and_timeouts(self) -> None:
        assert is_transient(httpx.ConnectError("boom")) is True
        assert is_transient(httpx.ReadTimeout("slow")) is True
        assert is_transient(asyncio.TimeoutError()) is True
        assert is_transient(TransientError("bad body")) is True

    def test_other_exceptions(self) -> None:
        assert is_transient(ValueError("validation")) is False
        assert is_transient(KeyError("x")) is False


# ---------------------------------------------------------------------------
# retry_with_backoff
# ---------------------------------------------------------------------------


class TestRetryWithBackoff:

    async def test_first_attempt_succeeds(self) -> None:
        fn = AsyncMock(return_value="ok")
        assert await retry_with_backoff(fn, initial_delay=0) == "ok"
        assert fn.await_count == 1

    async def test_recovers_after_transient_failures(self) -> None:
        fn = AsyncMock(side_effect=[_status_error(503), httpx.ConnectError("down"), "ok"])
        result = await retry_with_backoff(fn, max_retries=3, initial_delay=0)
        assert result == "ok"
        assert fn.await_count == 3

    async def test_non_transient_propagates_immediately(self) -> None:
        fn = AsyncMock(side_effect=_status_error(400))
        with pytest.raises(httpx.HTTPStatusError):
            await retry_with_backoff(fn, max_retries=3, initial_delay=0)
        assert fn.await_count == 1

    async def test_exhaustion_wraps_last_error(self) -> None:
        fn = AsyncMock(side_effect=TransientError("still broken"))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_with_backoff(fn, label="probe", max_retries=2, initial_delay=0)
        assert fn.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.label == "probe"
        assert isinstance(exc_info.value.last_error, TransientError)

    async def test_attempt_timeout_is_transient(self) -> None:
        calls = 0

        async def slow_then_fast() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        result = await retry_with_backoff(slow_then_fast, max_retries=1, initial_delay=0, timeout=0.05)
        assert result == "done"
        assert calls == 2

    async def test_backoff_schedule(self) -> None:
        fn = AsyncMock(side_effect=[TransientError("a"), TransientError("b"), "ok"])
        with patch("conductor.core.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await retry_with_backoff(fn, max_retries=3, initial_delay=0.5, multiplier=2.0)
        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [0.5, 1.0]

    async def test_custom_classifier(self) -> None:
        fn = AsyncMock(side_effect=[KeyError("flaky"), "ok"])
        result = await retry_with_backoff(
            fn, max_retries=1, initial_delay=0, classify=lambda e: isinstance(e, KeyError),
        )
        assert result == "ok"
