"""Bounded-concurrency execution of a batch of async work items."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_CONCURRENT_DOWNLOADS = 5


async def run_batch(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[R]],
    concurrency: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
) -> list[R]:
    """Run ``worker(item, index)`` for every item, at most ``concurrency`` at once.

    Results come back in input order regardless of completion order. A worker
    that raises does not cancel its siblings; once every item has settled the
    first exception (in input order) is re-raised.
    """
    if not items:
        return []
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_with_tracking(index: int, item: T) -> tuple[int, R]:
        async with semaphore:
            return index, await worker(item, index)

    settled = await asyncio.gather(
        *(run_with_tracking(index, item) for index, item in enumerate(items)),
        return_exceptions=True,
    )

    results: list[tuple[int, R]] = []
    for outcome in settled:
        if isinstance(outcome, BaseException):
            raise outcome
        results.append(outcome)
    return [value for _index, value in sorted(results, key=lambda pair: pair[0])]
