"""Concurrency gating for batch dispatch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class ConcurrencyThrottle:
    """Bounds how many dispatched batch handlers may be in flight at once.

    A slot must be acquired before a handler is dispatched; the slot is
    released automatically when the dispatched task settles, whether it
    succeeded or failed. With ``max_concurrent == 1`` this degenerates to
    fully sequential processing.

    Optionally the fetch loop can be paused between dispatches with
    :meth:`pause`.

    Example:
        ```python
        throttle = ConcurrencyThrottle(max_concurrent=4, sleep_time=0.1)
        for batch in batches:
            await throttle.acquire_slot()
            throttle.dispatch(handle(batch))
            await throttle.pause()
        await throttle.drain()
        ```
    """

    def __init__(self, max_concurrent: int = 1, sleep_time: float | None = None):
        """Initialize the throttle.

        Args:
            max_concurrent: Maximum number of in-flight handlers
            sleep_time: Seconds to pause after each dispatch, or None for no pause
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._sleep_time = sleep_time
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._pending: set[asyncio.Task] = set()
        self._in_flight = 0
        self._high_water_mark = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Number of slots currently held."""
        return self._in_flight

    @property
    def high_water_mark(self) -> int:
        """Largest number of slots held at the same time."""
        return self._high_water_mark

    @property
    def pending_count(self) -> int:
        """Number of dispatched tasks that have not settled yet."""
        return len(self._pending)

    async def acquire_slot(self) -> None:
        """Wait until a slot is free, then take it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        self._high_water_mark = max(self._high_water_mark, self._in_flight)

    def release_slot(self) -> None:
        """Give back a slot taken with :meth:`acquire_slot`."""
        if self._in_flight <= 0:
            raise RuntimeError("release_slot called without a held slot")
        self._in_flight -= 1
        self._semaphore.release()

    def dispatch(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Start ``coro`` without waiting for it.

        The caller must hold a slot; it is released when the task settles.

        Args:
            coro: Coroutine to run as a task

        Returns:
            The created task
        """
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_settled)
        return task

    def _on_settled(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        self.release_slot()

    async def pause(self) -> None:
        """Sleep for the configured time between dispatches, if any."""
        if self._sleep_time:
            logger.debug(f"Sleeping {self._sleep_time}s before next batch")
            await asyncio.sleep(self._sleep_time)

    async def drain(self) -> None:
        """Wait until every dispatched task has settled.

        Task failures are not raised here; callers observe them through the
        coroutines they dispatched.
        """
        while self._pending:
            await asyncio.wait(set(self._pending))
