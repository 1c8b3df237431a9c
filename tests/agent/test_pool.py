"""Tests for the bounded-window runner."""

import asyncio

import pytest

from agent.pool import run_bounded


class TestRunBounded:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 2, 3, 5, 8])
    async def test_results_follow_submission_order(self, concurrency):
        """Later items finish first, results still come back in input order."""
        items = list(range(5))

        async def _worker(item):
            await asyncio.sleep(0.002 * (len(items) - item))
            return item * 10

        assert await run_bounded(items, _worker, concurrency) == [0, 10, 20, 30, 40]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 2, 4])
    async def test_never_exceeds_concurrency(self, concurrency):
        in_flight = 0
        peak = 0

        async def _worker(item):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return item

        await run_bounded(range(10), _worker, concurrency)
        assert peak == concurrency

    @pytest.mark.asyncio
    async def test_empty_items(self):
        async def _worker(item):
            return item

        assert await run_bounded([], _worker, 3) == []

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        async def _worker(item):
            return item

        with pytest.raises(ValueError):
            await run_bounded([1], _worker, 0)

    @pytest.mark.asyncio
    async def test_worker_error_stops_remaining_workers(self):
        """Once one item raises, no further items are started."""
        started = []

        async def _worker(item):
            started.append(item)
            if item == 0:
                await asyncio.sleep(0.005)
                raise RuntimeError("worker failed")
            await asyncio.sleep(0.02)
            return item

        with pytest.raises(RuntimeError, match="worker failed"):
            await run_bounded(range(10), _worker, 2)

        await asyncio.sleep(0.05)
        assert started == [0, 1]
