"""Google Cloud Firestore backend.

Requires the ``firestore`` extra (``google-cloud-firestore``).

Example:
    ```python
    from google.cloud import firestore
    from dataknobs_traverse import create_migrator
    from dataknobs_traverse.backends.firestore import FirestoreTraversable

    client = firestore.AsyncClient()
    users = FirestoreTraversable(client.collection("users"), client=client)

    result = await create_migrator(users, batch_size=300).update(
        "plan", "free", lambda snap: snap.get("plan") is None
    )
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.field_path import FieldPath

from ..exceptions import CommitError
from ..traversable import Cursor, Page, Traversable, WriteBatch, WriteBatchProvider

logger = logging.getLogger(__name__)


def _field_key(path: Any) -> str:
    if isinstance(path, FieldPath):
        return path.to_api_repr()
    if isinstance(path, (tuple, list)):
        return FieldPath(*path).to_api_repr()
    return path


class FirestoreTraversable(Traversable[Any], WriteBatchProvider):
    """Pages through a Firestore collection, collection group or query.

    Pages are requested with ``limit(size)`` and continue with
    ``start_after(last_snapshot)``, relying on Firestore's stable query order.
    """

    def __init__(self, query: Any, client: firestore.AsyncClient | None = None):
        """Initialize the traversable.

        Args:
            query: An ``AsyncCollectionReference``, ``AsyncQuery`` or
                collection group
            client: Client used to create write batches. Defaults to the
                client the query belongs to.
        """
        self._query = query
        self._client = client if client is not None else getattr(query, "_client", None)

    @property
    def query(self) -> Any:
        return self._query

    async def get_page(self, cursor: Cursor | None, size: int) -> Page[Any]:
        query = self._query.limit(size)
        if cursor is not None:
            query = query.start_after(cursor)
        snapshots = list(await query.get())
        return Page(items=snapshots, has_more=len(snapshots) >= size)

    def new_write_batch(self) -> FirestoreWriteBatch:
        if self._client is None:
            raise CommitError("No Firestore client available to create write batches")
        return FirestoreWriteBatch(self._client.batch())


class FirestoreWriteBatch(WriteBatch):
    """Adapts a Firestore ``AsyncWriteBatch`` to the write batch contract."""

    def __init__(self, batch: Any):
        self._batch = batch
        self._staged = 0

    @property
    def staged_count(self) -> int:
        return self._staged

    def stage_field_merge(self, doc_ref: Any, data: dict[str, Any]) -> None:
        self._batch.update(doc_ref, {_field_key(key): value for key, value in data.items()})
        self._staged += 1

    def stage_field_path_update(self, doc_ref: Any, path: Any, value: Any) -> None:
        self._batch.update(doc_ref, {_field_key(path): value})
        self._staged += 1

    def stage_set(self, doc_ref: Any, data: dict[str, Any], merge: bool = False) -> None:
        self._batch.set(doc_ref, data, merge=merge)
        self._staged += 1

    def stage_field_delete(self, doc_ref: Any, path: Any) -> None:
        self._batch.update(doc_ref, {_field_key(path): firestore.DELETE_FIELD})
        self._staged += 1

    async def commit(self) -> None:
        try:
            await self._batch.commit()
        except api_exceptions.GoogleAPICallError as e:
            logger.warning(f"Firestore batch commit of {self._staged} writes failed: {e}")
            raise CommitError(str(e), self._staged) from e
