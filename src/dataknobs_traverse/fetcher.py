"""Cursor-based page fetching."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from .exceptions import FetchError

if TYPE_CHECKING:
    from .config import TraversalConfig
    from .traversable import Cursor, Traversable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Batch(Generic[T]):
    """An ordered group of items fetched in one request.

    Attributes:
        index: Zero-based position of this batch in the traversal
        items: Items in cursor order
    """

    index: int
    items: list[T] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


class BatchFetcher(Generic[T]):
    """Pulls successive pages from a traversable.

    The cursor advances to the last item of each page. Fetching stops when a
    page is empty, when the traversable reports no more items, or when
    ``max_doc_count`` documents have been fetched. The final page is truncated
    to the remaining allowance if needed.
    """

    def __init__(self, traversable: Traversable[T], config: TraversalConfig):
        self._traversable = traversable
        self._config = config
        self._cursor: Cursor | None = None
        self._doc_count = 0
        self._batch_index = 0
        self._exhausted = False

    @property
    def cursor(self) -> Cursor | None:
        return self._cursor

    @property
    def doc_count(self) -> int:
        """Number of documents fetched so far."""
        return self._doc_count

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def _remaining(self) -> int | None:
        if not self._config.has_doc_limit:
            return None
        return self._config.max_doc_count - self._doc_count

    async def next_batch(self) -> Batch[T] | None:
        """Fetch the next batch.

        Returns:
            The next batch, or None when the traversal is exhausted

        Raises:
            FetchError: If the traversable fails. The cursor is not advanced.
        """
        if self._exhausted:
            return None

        size = self._config.batch_size
        remaining = self._remaining()
        if remaining is not None:
            if remaining <= 0:
                self._exhausted = True
                return None
            size = min(size, remaining)

        try:
            page = await self._traversable.get_page(self._cursor, size)
        except Exception as e:
            logger.warning(f"Fetch of batch {self._batch_index} failed: {e}")
            raise FetchError(str(e), self._batch_index) from e

        items = list(page.items)
        if not items:
            self._exhausted = True
            return None

        if len(items) > size:
            items = items[:size]

        self._cursor = self._traversable.cursor_for(items[-1])
        self._doc_count += len(items)
        if not page.has_more or (remaining is not None and len(items) >= remaining):
            self._exhausted = True

        batch = Batch(index=self._batch_index, items=items)
        self._batch_index += 1
        logger.debug(
            f"Fetched batch {batch.index} with {len(batch)} documents "
            f"({self._doc_count} fetched so far)"
        )
        return batch
