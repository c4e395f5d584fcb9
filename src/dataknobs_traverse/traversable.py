"""Contracts for the external document store collaborators.

The traversal engine only knows how to ask a :class:`Traversable` for "the
next page after cursor X". The migration layer additionally needs a
:class:`WriteBatch` to stage and atomically commit document mutations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Opaque ordering key. By convention it is the last item of the previous page.
Cursor = Any


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page returned by a traversable.

    Attributes:
        items: Items in the store's stable total order
        has_more: False when the store knows no items follow this page
    """

    items: list[T] = field(default_factory=list)
    has_more: bool = True

    def __len__(self) -> int:
        return len(self.items)


class Traversable(ABC, Generic[T]):
    """A paginated, totally ordered source of items."""

    @abstractmethod
    async def get_page(self, cursor: Cursor | None, size: int) -> Page[T]:
        """Fetch up to ``size`` items that follow ``cursor``.

        Args:
            cursor: Last item of the previous page, or None for the first page
            size: Maximum number of items to return

        Returns:
            The next page. An empty page means the source is exhausted.
        """

    def cursor_for(self, item: T) -> Cursor:
        """Derive the cursor that continues after ``item``."""
        return item


class WriteBatch(ABC):
    """An atomic, multi-document mutation unit.

    Mutations are staged in memory and applied all-or-nothing by
    :meth:`commit`.
    """

    @abstractmethod
    def stage_field_merge(self, doc_ref: Any, data: dict[str, Any]) -> None:
        """Stage a merge of ``data`` into an existing document."""

    @abstractmethod
    def stage_field_path_update(self, doc_ref: Any, path: Any, value: Any) -> None:
        """Stage setting the field at ``path`` of an existing document."""

    @abstractmethod
    def stage_set(self, doc_ref: Any, data: dict[str, Any], merge: bool = False) -> None:
        """Stage writing ``data`` as the document contents (or merging it)."""

    @abstractmethod
    def stage_field_delete(self, doc_ref: Any, path: Any) -> None:
        """Stage removal of the field at ``path`` of an existing document."""

    @abstractmethod
    async def commit(self) -> None:
        """Atomically apply every staged mutation.

        Raises:
            CommitError: If the store rejects the batch. Nothing is applied.
        """

    @property
    @abstractmethod
    def staged_count(self) -> int:
        """Number of mutations staged so far."""


class WriteBatchProvider(ABC):
    """Capability of a store that can create write batches."""

    @abstractmethod
    def new_write_batch(self) -> WriteBatch:
        """Create an empty write batch."""
