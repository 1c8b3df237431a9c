"""Bounded-window execution shared by the tool executor and the batch runner."""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[Any]],
    concurrency: int,
) -> List[Any]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` calls in flight.

    A fixed pool of ``concurrency`` workers pulls the next pending item as soon
    as its current one finishes. Results are written into a list sized up front,
    so their order always matches ``items`` regardless of completion order.

    ``worker`` is expected to capture its own failures; an exception escaping
    it propagates to the caller and the remaining workers are cancelled.

    Args:
        items: Inputs to process
        worker: Coroutine function applied to each item
        concurrency: Maximum number of concurrent ``worker`` calls

    Returns:
        List of worker results in submission order
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    items = list(items)
    results: List[Any] = [None] * len(items)
    next_index = 0

    async def _drain() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            results[index] = await worker(items[index])

    workers = [asyncio.ensure_future(_drain()) for _ in range(min(concurrency, len(items)))]
    if workers:
        try:
            await asyncio.gather(*workers)
        except BaseException:
            # Stop the remaining workers from pulling further items
            for task in workers:
                task.cancel()
            raise

    return results
