from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    def delay_for(self, retry_index: int) -> float:
        """Seconds to wait before retry number ``retry_index`` (0-based)."""
        return min(self.initial_delay * (self.backoff_factor**retry_index), self.max_delay)


def is_transient_http_error(exc: BaseException) -> bool:
    """Check if an aiohttp exception is transient/retryable.

    Args:
        exc: The exception to check

    Returns:
        True for connection drops, timeouts, and 408/425/429/5xx responses
    """
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status in RETRYABLE_STATUS_CODES or exc.status >= 500
    return isinstance(
        exc,
        (
            aiohttp.ClientConnectionError,
            aiohttp.ServerTimeoutError,
            aiohttp.ClientPayloadError,
            asyncio.TimeoutError,
        ),
    )


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    retry_on: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[int, BaseException], None] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Execute an async operation with retry logic.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Attempt count and backoff shape (defaults to RetryPolicy())
        retry_on: Predicate deciding whether a failure is worth retrying;
            every exception is retried when omitted
        on_retry: Optional callback called on each retry with (attempt_num, exception)
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The result of the first successful attempt

    Raises:
        Exception: The last exception, unchanged, once attempts are exhausted
            or the predicate rejects it
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            retryable = retry_on(exc) if retry_on is not None else True
            if not retryable or attempt >= attempts - 1:
                raise
            delay = policy.delay_for(attempt)
            if on_retry:
                on_retry(attempt + 1, exc)
            logger.debug(
                "Attempt %s/%s failed, retrying in %.1fs: %s", attempt + 1, attempts, delay, exc
            )
            await sleep(delay)
    raise RuntimeError("unreachable")
