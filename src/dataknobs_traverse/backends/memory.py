"""In-memory document collection backend."""

from __future__ import annotations

import asyncio
import bisect
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import CommitError, OperationError, ValidationError
from ..traversable import Cursor, Page, Traversable, WriteBatch, WriteBatchProvider

logger = logging.getLogger(__name__)


def field_path_parts(path: Any) -> tuple[str, ...]:
    """Split a field path into its segments.

    Accepts dotted strings (``"address.city"``), sequences of segments and
    objects exposing a ``parts`` attribute (such as Firestore ``FieldPath``).
    """
    if isinstance(path, str):
        parts = tuple(path.split("."))
    elif isinstance(path, (tuple, list)):
        parts = tuple(str(p) for p in path)
    elif hasattr(path, "parts"):
        parts = tuple(str(p) for p in path.parts)
    else:
        raise ValidationError(f"Invalid field path: {path!r}")
    if not parts or any(not p for p in parts):
        raise ValidationError(f"Invalid field path: {path!r}")
    return parts


def _get_path(data: Mapping[str, Any], parts: tuple[str, ...]) -> Any:
    current: Any = data
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            raise KeyError(".".join(parts))
        current = current[part]
    return current


def _set_path(data: dict[str, Any], parts: tuple[str, ...], value: Any) -> None:
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = copy.deepcopy(value)


def _delete_path(data: dict[str, Any], parts: tuple[str, ...]) -> None:
    current: Any = data
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


@dataclass(frozen=True)
class DocumentReference:
    """Identifies a document in a :class:`MemoryCollection`."""

    id: str
    collection: MemoryCollection = field(repr=False, compare=False)

    @property
    def path(self) -> str:
        return f"{self.collection.name}/{self.id}"


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of a document's contents."""

    id: str
    reference: DocumentReference
    data: dict[str, Any]

    @property
    def exists(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        """Get a copy of the document data."""
        return copy.deepcopy(self.data)

    def get(self, path: Any) -> Any:
        """Get the value at a field path.

        Raises:
            KeyError: If the field does not exist
        """
        return copy.deepcopy(_get_path(self.data, field_path_parts(path)))


class MemoryCollection(Traversable[DocumentSnapshot], WriteBatchProvider):
    """A collection of documents held in memory.

    Documents are ordered by id, which gives the stable total order that
    cursor pagination needs.

    Example:
        ```python
        collection = MemoryCollection({"a": {"status": "new"}, "b": {"status": "new"}})
        migrator = create_migrator(collection, batch_size=100)
        await migrator.update("status", "archived")
        ```
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None, name: str = "memory"):
        self.name = name
        self._storage: dict[str, dict[str, Any]] = {}
        self._ids: list[str] = []
        self._lock = asyncio.Lock()
        for doc_id, data in (documents or {}).items():
            self.add(doc_id, data)

    def __len__(self) -> int:
        return len(self._storage)

    def document(self, doc_id: str) -> DocumentReference:
        """Get a reference to a document (which need not exist)."""
        return DocumentReference(doc_id, self)

    def add(self, doc_id: str, data: Mapping[str, Any]) -> DocumentReference:
        """Add or replace a document."""
        if not isinstance(doc_id, str) or not doc_id:
            raise ValidationError("Document id must be a non-empty string")
        self._store(doc_id, copy.deepcopy(dict(data)))
        return self.document(doc_id)

    def delete(self, doc_id: str) -> bool:
        """Remove a document. Returns False if it did not exist."""
        if self._storage.pop(doc_id, None) is None:
            return False
        del self._ids[bisect.bisect_left(self._ids, doc_id)]
        return True

    def _store(self, doc_id: str, data: dict[str, Any]) -> None:
        if doc_id not in self._storage:
            bisect.insort(self._ids, doc_id)
        self._storage[doc_id] = data

    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Get a copy of a document's data, or None if it does not exist."""
        data = self._storage.get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Get a copy of all documents keyed by id."""
        return {doc_id: copy.deepcopy(self._storage[doc_id]) for doc_id in self._ids}

    def _snapshot(self, doc_id: str) -> DocumentSnapshot:
        return DocumentSnapshot(doc_id, self.document(doc_id), copy.deepcopy(self._storage[doc_id]))

    async def get_page(self, cursor: Cursor | None, size: int) -> Page[DocumentSnapshot]:
        """Get up to ``size`` documents whose id sorts after the cursor."""
        async with self._lock:
            ids = self._ids
            start = 0
            if cursor is not None:
                start = bisect.bisect_right(ids, self._cursor_id(cursor))
            page_ids = ids[start:start + size]
            items = [self._snapshot(doc_id) for doc_id in page_ids]
            return Page(items=items, has_more=start + size < len(ids))

    @staticmethod
    def _cursor_id(cursor: Cursor) -> str:
        if isinstance(cursor, str):
            return cursor
        if isinstance(cursor, (DocumentSnapshot, DocumentReference)):
            return cursor.id
        raise ValidationError(f"Unsupported cursor type: {type(cursor).__name__}")

    def new_write_batch(self) -> MemoryWriteBatch:
        return MemoryWriteBatch(self)

    async def _apply(self, operations: list[tuple[str, str, Any]]) -> None:
        """Apply operations atomically: all are validated before any is stored."""
        async with self._lock:
            working: dict[str, dict[str, Any] | None] = {}
            for kind, doc_id, payload in operations:
                if doc_id not in working:
                    current = self._storage.get(doc_id)
                    working[doc_id] = copy.deepcopy(current) if current is not None else None
                doc = working[doc_id]

                if kind == "set":
                    data, merge = payload
                    if merge and doc is not None:
                        _deep_merge(doc, data)
                    else:
                        working[doc_id] = copy.deepcopy(dict(data))
                    continue

                if doc is None:
                    raise CommitError(f"No document to update: {self.name}/{doc_id}", len(operations))
                if kind == "update":
                    for parts, value in payload:
                        _set_path(doc, parts, value)
                elif kind == "delete_field":
                    _delete_path(doc, payload)
                else:
                    raise CommitError(f"Unknown operation '{kind}'", len(operations))

            for doc_id, doc in working.items():
                if doc is not None:
                    self._store(doc_id, doc)


class MemoryWriteBatch(WriteBatch):
    """Atomic write batch for a :class:`MemoryCollection`.

    Nothing is applied until :meth:`commit`; if any staged operation is
    invalid, none are applied. A batch can be committed only once.
    """

    def __init__(self, collection: MemoryCollection):
        self._collection = collection
        self._operations: list[tuple[str, str, Any]] = []
        self._committed = False

    @property
    def staged_count(self) -> int:
        return len(self._operations)

    @property
    def committed(self) -> bool:
        return self._committed

    def _doc_id(self, doc_ref: Any) -> str:
        if self._committed:
            raise OperationError("Cannot stage operations on a committed write batch")
        if isinstance(doc_ref, DocumentReference):
            if doc_ref.collection is not self._collection:
                raise ValidationError(f"Reference {doc_ref.path} belongs to another collection")
            return doc_ref.id
        if isinstance(doc_ref, str):
            return doc_ref
        raise ValidationError(f"Unsupported document reference: {doc_ref!r}")

    def stage_field_merge(self, doc_ref: Any, data: dict[str, Any]) -> None:
        doc_id = self._doc_id(doc_ref)
        if not data:
            raise ValidationError("Update data must not be empty")
        updates = [(field_path_parts(key), value) for key, value in data.items()]
        self._operations.append(("update", doc_id, updates))

    def stage_field_path_update(self, doc_ref: Any, path: Any, value: Any) -> None:
        doc_id = self._doc_id(doc_ref)
        self._operations.append(("update", doc_id, [(field_path_parts(path), value)]))

    def stage_set(self, doc_ref: Any, data: dict[str, Any], merge: bool = False) -> None:
        doc_id = self._doc_id(doc_ref)
        self._operations.append(("set", doc_id, (copy.deepcopy(dict(data)), merge)))

    def stage_field_delete(self, doc_ref: Any, path: Any) -> None:
        doc_id = self._doc_id(doc_ref)
        self._operations.append(("delete_field", doc_id, field_path_parts(path)))

    async def commit(self) -> None:
        if self._committed:
            raise CommitError("Write batch was already committed", len(self._operations))
        await self._collection._apply(self._operations)
        self._committed = True
        logger.debug(f"Committed {len(self._operations)} operations to {self._collection.name}")
