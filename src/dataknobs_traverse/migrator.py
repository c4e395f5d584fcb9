"""Mass, predicate-filtered document mutations built on the traverser.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from .actions import (
    DeleteField,
    MigrationAction,
    RenameField,
    SetDocument,
    UpdateAction,
    UpdateDataGetter,
    UpdatePredicate,
    resolve_update_action,
)
from .config import TraversalConfig, resolve_config
from .exceptions import ConfigurationError
from .fetcher import Batch
from .traversable import Traversable, WriteBatch, WriteBatchProvider
from .traverser import Traverser

logger = logging.getLogger(__name__)

T = TypeVar("T")

WriteBatchFactory = Callable[[], WriteBatch]


@dataclass(frozen=True)
class UpdateResult:
    """Result of a migration.

    Attributes:
        batch_count: Number of batches traversed
        updated_doc_count: Number of documents that passed the predicate and
            had a mutation committed
    """

    batch_count: int
    updated_doc_count: int


class Migrator(Traverser[T]):
    """Traverser that mutates the documents it visits.

    Every page of documents gets its own write batch. Mutations for all
    documents in the page are staged onto it and it is committed once, so a
    page is updated all-or-nothing. Pages commit independently: a failure in
    a later page does not roll back earlier ones.

    Example:
        ```python
        migrator = create_migrator(collection, batch_size=200)

        # Static update data
        await migrator.update({"archived": True}, lambda doc: doc.get("year") < 2020)

        # Single field
        await migrator.update("status", "archived")

        # Computed per document
        await migrator.update(lambda doc: {"name": doc.get("name").strip()})
        ```
    """

    def __init__(
        self,
        traversable: Traversable[T],
        config: TraversalConfig | None = None,
        write_batch_factory: WriteBatchFactory | None = None,
    ):
        """Initialize the migrator.

        Args:
            traversable: The documents to migrate. Items must expose a
                ``reference`` attribute identifying the document.
            config: Traversal configuration
            write_batch_factory: Creates an empty write batch. Defaults to the
                traversable's ``new_write_batch`` when it provides one.
        """
        super().__init__(traversable, config)
        if write_batch_factory is None:
            if not isinstance(traversable, WriteBatchProvider):
                raise ConfigurationError(
                    "write_batch_factory",
                    f"required because {type(traversable).__name__} cannot create write batches",
                )
            write_batch_factory = traversable.new_write_batch
        self._write_batch_factory = write_batch_factory

    def _copy_with(self, config: TraversalConfig) -> Migrator[T]:
        return type(self)(self._traversable, config, self._write_batch_factory)

    async def update(self, *args: Any) -> UpdateResult:
        """Update every matching document.

        Accepted call shapes:

        - ``update(update_data, predicate=None)``: merge ``update_data`` (a
          non-empty mapping) into each document
        - ``update(field, value, predicate=None)``: set a single field, given
          by name or field path
        - ``update(get_update_data, predicate=None)``: merge the mapping
          returned by ``get_update_data(snapshot)`` into each document

        ``predicate(snapshot)`` decides per document whether it is updated;
        without one every document is updated.

        Returns:
            UpdateResult with the number of batches and updated documents

        Raises:
            UpdateArgumentError: If the arguments fit none of the call shapes
            FetchError: If fetching a page fails
            HandlerError: If staging or committing a page fails
        """
        return await self.apply(resolve_update_action(*args))

    async def set(
        self,
        data: Mapping[str, Any] | UpdateDataGetter,
        predicate: UpdatePredicate | None = None,
        merge: bool = False,
    ) -> UpdateResult:
        """Overwrite every matching document.

        Args:
            data: Document contents, or a callable computing them from the snapshot
            predicate: Optional per-document filter
            merge: Merge into the existing document instead of replacing it

        Returns:
            UpdateResult with the number of batches and written documents
        """
        return await self.apply(SetDocument(data, predicate, merge))

    async def delete_field(self, field: Any, predicate: UpdatePredicate | None = None) -> UpdateResult:
        """Remove ``field`` from every matching document."""
        return await self.apply(DeleteField(field, predicate))

    async def rename_field(
        self,
        old_field: str,
        new_field: str,
        predicate: UpdatePredicate | None = None,
    ) -> UpdateResult:
        """Rename ``old_field`` to ``new_field`` in every matching document.

        Documents that do not contain ``old_field`` are not counted.
        """
        return await self.apply(RenameField(old_field, new_field, predicate))

    async def apply(self, action: UpdateAction | MigrationAction) -> UpdateResult:
        """Traverse all documents and stage ``action`` for each of them.

        Args:
            action: Resolved mutation action

        Returns:
            UpdateResult with the number of batches and mutated documents
        """
        updated_doc_count = 0
        action_name = type(action).__name__

        async def handle(batch: Batch[T]) -> None:
            nonlocal updated_doc_count
            write_batch = self._write_batch_factory()
            staged = 0
            for snapshot in batch:
                if action.stage(write_batch, snapshot):
                    staged += 1

            if staged == 0:
                logger.debug(f"Batch {batch.index}: no documents matched, nothing to commit")
                return

            await write_batch.commit()
            updated_doc_count += staged
            logger.debug(f"Batch {batch.index}: committed {staged} of {len(batch)} documents")

        logger.info(f"Starting migration with {action_name}")
        result = await self.traverse(handle)
        logger.info(
            f"Migration with {action_name} finished: {updated_doc_count} documents "
            f"updated in {result.batch_count} batches"
        )
        return UpdateResult(batch_count=result.batch_count, updated_doc_count=updated_doc_count)


def create_migrator(
    traversable: Traversable[T],
    config: TraversalConfig | dict[str, Any] | None = None,
    write_batch_factory: WriteBatchFactory | None = None,
    **overrides: Any,
) -> Migrator[T]:
    """Create a migrator for a traversable.

    Args:
        traversable: The documents to migrate
        config: A TraversalConfig, a dictionary of config values, or None
        write_batch_factory: Optional write batch factory (see :class:`Migrator`)
        **overrides: Individual config fields to replace

    Returns:
        New Migrator
    """
    return Migrator(traversable, resolve_config(config, **overrides), write_batch_factory)
