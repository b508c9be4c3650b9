"""
Bounded retry-with-backoff for outbound calls.

Every call to the reasoning model and to external collaborators goes through
``retry_with_backoff``.  Each attempt is bounded by a wall-clock timeout so a
single slow call cannot stall the round loop indefinitely.

Retried: network errors, timeouts, 429 and 5xx responses, ``TransientError``.
Not retried: 4xx responses and everything else (validation-class failures).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from conductor.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 425, 429, 500, 502, 503, 504})


class TransientError(Exception):
    """Raised by a callable to request a retry (e.g. malformed upstream payload)."""


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a transient error."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


def is_transient(exc: BaseException) -> bool:
    """Classify an exception as retryable."""
    if isinstance(exc, (TransientError, asyncio.TimeoutError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.TransportError):
        return True
    return False


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    label: str = "call",
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    multiplier: Optional[float] = None,
    timeout: Optional[float] = None,
    classify: Callable[[BaseException], bool] = is_transient,
) -> T:
    """Run *fn* with exponential backoff on transient failures.

    ``fn`` is a zero-argument coroutine factory; it is called once per attempt.
    Non-transient errors propagate immediately.  When retries run out a
    ``RetryExhaustedError`` wraps the last transient error.
    """
    retries = settings.retry_max_retries if max_retries is None else max_retries
    delay = settings.retry_initial_delay if initial_delay is None else initial_delay
    factor = settings.retry_backoff_multiplier if multiplier is None else multiplier
    per_attempt = settings.call_timeout_seconds if timeout is None else timeout

    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(fn(), timeout=per_attempt)
        except Exception as exc:
            if not classify(exc):
                raise
            if attempt >= retries:
                logger.error(f"{label}: giving up after {attempt + 1} attempts ({type(exc).__name__})")
                raise RetryExhaustedError(label, attempt + 1, exc) from exc
            logger.warning(
                f"{label}: transient failure ({type(exc).__name__}: {exc}); "
                f"retry {attempt + 1}/{retries} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            delay *= factor
            attempt += 1
