"""Batch traversal engine.

The :class:`Traverser` walks an arbitrarily large :class:`Traversable` in
bounded-size batches and hands each batch to user logic exactly once, in
ascending cursor order.

Example:
    ```python
    from dataknobs_traverse import create_traverser

    traverser = create_traverser(collection, batch_size=500, max_concurrent_batch_count=4)

    async def handle(batch):
        for snapshot in batch:
            await index(snapshot.to_dict())

    result = await traverser.traverse(handle)
    print(f"Visited {result.doc_count} documents in {result.batch_count} batches")
    ```
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .config import TraversalConfig, resolve_config
from .exceptions import FetchError, HandlerError, TraverseError
from .fetcher import Batch, BatchFetcher
from .throttle import ConcurrencyThrottle
from .traversable import Cursor, Traversable

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchHandler = Callable[[Batch[T]], Awaitable[Any] | Any]
ItemCallback = Callable[[T], Awaitable[Any] | Any]


@dataclass(frozen=True)
class TraversalResult:
    """Final aggregate of one ``traverse()`` call.

    Attributes:
        batch_count: Number of batches dispatched to the handler
        doc_count: Number of documents in those batches
    """

    batch_count: int
    doc_count: int


@dataclass
class TraversalState:
    """Mutable bookkeeping of a running traversal.

    Owned by the fetch loop of a single ``traverse()`` call.
    """

    cursor: Cursor | None = None
    docs_fetched_so_far: int = 0
    batches_dispatched: int = 0
    docs_dispatched: int = 0
    in_flight_count: int = 0
    errors: list[TraverseError] = field(default_factory=list)
    start_time: float | None = None

    @property
    def failed(self) -> bool:
        return len(self.errors) > 0

    def record_error(self, error: TraverseError) -> None:
        self.errors.append(error)

    def to_result(self) -> TraversalResult:
        return TraversalResult(batch_count=self.batches_dispatched, doc_count=self.docs_dispatched)


async def _invoke(callback: Callable[..., Any], *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Traverser(Generic[T]):
    """Traverses a :class:`Traversable` in batches.

    For each batch the traverser invokes the handler and moves on to the next
    batch without waiting for the handler to finish, as long as fewer than
    ``max_concurrent_batch_count`` handlers are in flight. With the default
    concurrency of 1, batch N+1 is not fetched until the handler for batch N
    has settled.

    Raising concurrency makes traversal faster at the cost of memory, since
    more batches are held at once. Completion order is only guaranteed when
    concurrency is 1.
    """

    def __init__(self, traversable: Traversable[T], config: TraversalConfig | None = None):
        """Initialize the traverser.

        Args:
            traversable: The paginated source to walk
            config: Traversal configuration (defaults to ``TraversalConfig()``)
        """
        self._traversable = traversable
        self._config = config if config is not None else TraversalConfig()

    @property
    def traversable(self) -> Traversable[T]:
        return self._traversable

    @property
    def config(self) -> TraversalConfig:
        return self._config

    def with_config(
        self,
        config: TraversalConfig | dict[str, Any] | None = None,
        **overrides: Any,
    ) -> Traverser[T]:
        """Create a new traverser of the same kind with a different config.

        Args:
            config: Replacement config; when None, this traverser's config is
                used as the base for ``overrides``
            **overrides: Individual config fields to replace

        Returns:
            New traverser over the same traversable
        """
        base = config if config is not None else self._config
        return self._copy_with(resolve_config(base, **overrides))

    def _copy_with(self, config: TraversalConfig) -> Traverser[T]:
        return type(self)(self._traversable, config)

    async def traverse(self, handler: BatchHandler) -> TraversalResult:
        """Traverse the whole traversable, invoking ``handler`` once per batch.

        Args:
            handler: Called with each :class:`Batch`. May be a coroutine
                function or a plain callable.

        Returns:
            TraversalResult counting the batches and documents dispatched

        Raises:
            FetchError: If fetching a page fails
            HandlerError: If a handler fails (the first failure is reported)

        In both failure cases every handler that was already dispatched is
        allowed to settle before the error is raised.
        """
        config = self._config
        fetcher: BatchFetcher[T] = BatchFetcher(self._traversable, config)
        throttle = ConcurrencyThrottle(
            max_concurrent=config.max_concurrent_batch_count,
            sleep_time=config.sleep_time_between_batches if config.sleep_between_batches else None,
        )
        state = TraversalState(start_time=time.time())

        logger.info(
            f"Starting traversal (batch_size={config.batch_size}, "
            f"max_concurrent_batch_count={config.max_concurrent_batch_count}, "
            f"max_doc_count={config.max_doc_count or 'unlimited'})"
        )

        def record_handler_error(batch: Batch[T], e: BaseException) -> None:
            logger.warning(f"Handler for batch {batch.index} failed: {type(e).__name__}: {e}")
            error = HandlerError(batch.index, e)
            error.__cause__ = e
            state.record_error(error)

        async def run_handler(batch: Batch[T]) -> None:
            try:
                await _invoke(handler, batch)
            except (Exception, asyncio.CancelledError) as e:
                record_handler_error(batch, e)
            else:
                logger.debug(f"Batch {batch.index} settled")

        def check_cancelled(batch: Batch[T], task: asyncio.Task) -> None:
            # Cancelled before the handler started running
            if task.cancelled():
                record_handler_error(batch, asyncio.CancelledError())

        try:
            while not state.failed:
                await throttle.acquire_slot()
                if state.failed:
                    throttle.release_slot()
                    break
                try:
                    batch = await fetcher.next_batch()
                except FetchError as e:
                    throttle.release_slot()
                    state.record_error(e)
                    break

                if batch is None or state.failed:
                    throttle.release_slot()
                    break

                state.cursor = fetcher.cursor
                state.docs_fetched_so_far = fetcher.doc_count
                state.batches_dispatched += 1
                state.docs_dispatched += len(batch)
                state.in_flight_count = throttle.in_flight

                logger.debug(
                    f"Dispatching batch {batch.index} ({len(batch)} documents, "
                    f"{state.docs_fetched_so_far} fetched so far, {state.in_flight_count} in flight)"
                )
                task = throttle.dispatch(run_handler(batch))
                task.add_done_callback(functools.partial(check_cancelled, batch))

                if fetcher.exhausted:
                    break
                await throttle.pause()
        finally:
            await throttle.drain()

        if state.failed:
            error = state.errors[0]
            logger.warning(
                f"Traversal failed after dispatching {state.batches_dispatched} batches "
                f"({state.docs_fetched_so_far} documents fetched): {error}"
            )
            logger.debug(f"Last cursor before the failure: {state.cursor!r}")
            raise error

        result = state.to_result()
        elapsed = time.time() - state.start_time
        logger.info(
            f"Traversal finished: {result.batch_count} batches, "
            f"{result.doc_count} documents in {elapsed:.2f}s"
        )
        return result

    async def traverse_each(self, callback: ItemCallback) -> TraversalResult:
        """Traverse the whole traversable, invoking ``callback`` once per item.

        Items within a batch are processed one after another in cursor order.

        Args:
            callback: Called with each item. May be a coroutine function or a
                plain callable.

        Returns:
            TraversalResult counting the batches and documents dispatched
        """

        async def handle(batch: Batch[T]) -> None:
            for item in batch:
                await _invoke(callback, item)

        return await self.traverse(handle)


def create_traverser(
    traversable: Traversable[T],
    config: TraversalConfig | dict[str, Any] | None = None,
    **overrides: Any,
) -> Traverser[T]:
    """Create a traverser for a traversable.

    Args:
        traversable: The paginated source to walk
        config: A TraversalConfig, a dictionary of config values, or None for
            defaults
        **overrides: Individual config fields to replace

    Returns:
        New Traverser

    Raises:
        ConfigurationError: If the resulting config is invalid
    """
    return Traverser(traversable, resolve_config(config, **overrides))
