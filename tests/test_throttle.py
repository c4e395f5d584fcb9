"""Tests for the concurrency throttle."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from dataknobs_traverse.throttle import ConcurrencyThrottle


class TestConcurrencyThrottle:
    """Test slot accounting, dispatch and draining."""

    def test_invalid_max_concurrent(self):
        with pytest.raises(ValueError, match="at least 1"):
            ConcurrencyThrottle(max_concurrent=0)

    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        """Test slot counters."""
        throttle = ConcurrencyThrottle(max_concurrent=2)
        await throttle.acquire_slot()
        await throttle.acquire_slot()
        assert throttle.in_flight == 2
        assert throttle.high_water_mark == 2

        throttle.release_slot()
        assert throttle.in_flight == 1
        assert throttle.high_water_mark == 2

    @pytest.mark.asyncio
    async def test_release_without_slot(self):
        """Test that releasing more slots than acquired is an error."""
        throttle = ConcurrencyThrottle()
        with pytest.raises(RuntimeError):
            throttle.release_slot()

    @pytest.mark.asyncio
    async def test_acquire_waits_for_free_slot(self):
        """Test that acquisition suspends at capacity until a slot is released."""
        throttle = ConcurrencyThrottle(max_concurrent=1)
        await throttle.acquire_slot()

        waiter = asyncio.ensure_future(throttle.acquire_slot())
        await asyncio.sleep(0)
        assert not waiter.done()

        throttle.release_slot()
        await asyncio.wait_for(waiter, timeout=1)
        assert throttle.in_flight == 1

    @pytest.mark.asyncio
    async def test_dispatch_releases_slot_on_success_and_failure(self):
        """Test that settled tasks give their slot back either way."""
        throttle = ConcurrencyThrottle(max_concurrent=2)

        async def ok():
            await asyncio.sleep(0)

        async def boom():
            await asyncio.sleep(0)
            raise ValueError("boom")

        await throttle.acquire_slot()
        ok_task = throttle.dispatch(ok())
        await throttle.acquire_slot()
        failed_task = throttle.dispatch(boom())
        assert throttle.pending_count == 2

        await throttle.drain()

        assert throttle.in_flight == 0
        assert throttle.pending_count == 0
        assert ok_task.done()
        assert isinstance(failed_task.exception(), ValueError)

    @pytest.mark.asyncio
    async def test_drain_waits_for_all_tasks(self):
        """Test that drain returns only after every dispatched task settled."""
        throttle = ConcurrencyThrottle(max_concurrent=3)
        finished = []

        async def work(i, delay):
            await asyncio.sleep(delay)
            finished.append(i)

        for i, delay in enumerate([0.03, 0.01, 0.02]):
            await throttle.acquire_slot()
            throttle.dispatch(work(i, delay))

        await throttle.drain()
        assert sorted(finished) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await ConcurrencyThrottle().drain()

    @pytest.mark.asyncio
    async def test_pause_sleeps_configured_time(self):
        """Test that pause sleeps only when a sleep time is configured."""
        with patch("dataknobs_traverse.throttle.asyncio.sleep", new=AsyncMock()) as sleep:
            await ConcurrencyThrottle(sleep_time=0.25).pause()
            await ConcurrencyThrottle(sleep_time=None).pause()

        sleep.assert_awaited_once_with(0.25)
