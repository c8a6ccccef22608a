"""Retry wrapper for content store calls.

Exponential backoff with jitter, a reachability probe before every attempt,
and no retries for authentication or validation failures.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from schoolnews.errors import StoreUnavailableError, status_of

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE_STATUSES = (401, 422)
RETRYABLE_MESSAGE_HINTS = ("fetch", "connect", "network")
MAX_JITTER_MS = 200


def is_retryable(error: BaseException) -> bool:
    """Classify a failure as transient (worth another attempt) or terminal."""
    status = status_of(error)
    if status in NON_RETRYABLE_STATUSES:
        return False
    if status is not None and status >= 500:
        return True
    if isinstance(error, (httpx.TransportError, ConnectionError, asyncio.TimeoutError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in RETRYABLE_MESSAGE_HINTS)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Milliseconds to wait before ``attempt`` (0-indexed, >= 1)."""
    jitter = random.uniform(0, MAX_JITTER_MS)
    return base_delay * (2 ** (attempt - 1)) + jitter


async def _probe_ok(probe: Callable[[], Awaitable[bool]]) -> bool:
    try:
        return bool(await probe())
    except Exception as e:
        logger.warning(f"Reachability probe failed: {e}")
        return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1000,
    *,
    probe: Optional[Callable[[], Awaitable[bool]]] = None,
    attempt_timeout: Optional[float] = None,
) -> T:
    """Run ``operation`` with bounded retries.

    Args:
        operation: zero-argument coroutine function to run
        max_retries: total number of attempts
        base_delay: backoff base in milliseconds
        probe: reachability check awaited before each attempt
        attempt_timeout: optional per-attempt limit in seconds

    Returns the first successful result. Failures with status 401/422 and
    unclassified failures are raised immediately; transient ones are retried
    until attempts run out, then the last one is raised.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    last_error: Optional[BaseException] = None
    for attempt in range(max_retries):
        if attempt > 0:
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                f"Retrying operation (attempt {attempt + 1} of {max_retries}) in {delay:.0f}ms: {last_error}"
            )
            await asyncio.sleep(delay / 1000)

        try:
            if probe is not None and not await _probe_ok(probe):
                raise StoreUnavailableError()

            if attempt_timeout is not None:
                return await asyncio.wait_for(operation(), timeout=attempt_timeout)
            return await operation()
        except Exception as e:
            last_error = e
            if not is_retryable(e):
                raise
            if attempt == max_retries - 1:
                logger.error(f"Operation failed after {max_retries} attempts: {e}")
                raise

    raise last_error


@dataclass(frozen=True)
class RetryPolicy:
    """How the retry wrapper paces repeated attempts."""

    max_retries: int = 3
    base_delay: float = 1000
    attempt_timeout: Optional[float] = None

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        probe: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> T:
        return await with_retry(
            operation,
            self.max_retries,
            self.base_delay,
            probe=probe,
            attempt_timeout=self.attempt_timeout,
        )
