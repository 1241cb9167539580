"""Bounded worker pool over a shared job index.

Workers pull the next index until the job list is exhausted. Running on one event
loop, the index advance is the only shared mutation, so no lock is needed.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

T = TypeVar("T")

Job = Callable[[], Awaitable[T]]


async def run_pool(
    jobs: Sequence[Job[T]],
    concurrency: int,
    *,
    fail_fast: bool = False,
) -> list[T | BaseException]:
    """Run ``jobs`` with at most ``concurrency`` in flight.

    Fail-soft (default): an exception becomes that job's result and siblings carry
    on. Fail-fast: the first exception cancels the remaining workers and is
    re-raised.
    """
    results: list[T | BaseException] = [None] * len(jobs)  # type: ignore[list-item]
    next_index = 0

    async def _worker() -> None:
        nonlocal next_index
        while next_index < len(jobs):
            index = next_index
            next_index += 1
            try:
                results[index] = await jobs[index]()
            except Exception as exc:
                if fail_fast:
                    raise
                logger.error("Task {} failed: {}", index, exc)
                results[index] = exc

    workers = [
        asyncio.create_task(_worker()) for _ in range(max(1, min(concurrency, len(jobs))))
    ]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for worker in workers:
            worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results
