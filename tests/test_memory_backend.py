"""Tests for the in-memory backend."""

import pytest

from dataknobs_traverse.backends.memory import (
    DocumentReference,
    MemoryCollection,
    field_path_parts,
)
from dataknobs_traverse.exceptions import CommitError, OperationError, ValidationError

from conftest import make_collection


class FakeFieldPath:
    def __init__(self, *parts):
        self.parts = parts


class TestFieldPaths:
    """Test field path parsing."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("status", ("status",)),
            ("address.city", ("address", "city")),
            (("address", "city"), ("address", "city")),
            (["a", "b", "c"], ("a", "b", "c")),
            (FakeFieldPath("with.dot", "x"), ("with.dot", "x")),
        ],
    )
    def test_valid_paths(self, path, expected):
        assert field_path_parts(path) == expected

    @pytest.mark.parametrize("path", ["", "a..b", (), 42, None])
    def test_invalid_paths(self, path):
        with pytest.raises(ValidationError):
            field_path_parts(path)


class TestMemoryCollectionPages:
    """Test cursor pagination over a memory collection."""

    @pytest.mark.asyncio
    async def test_pages_are_ordered_by_id(self):
        collection = MemoryCollection({"c": {}, "a": {}, "b": {}})
        page = await collection.get_page(None, 10)

        assert [snap.id for snap in page.items] == ["a", "b", "c"]
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_cursor_variants(self, collection_25):
        """Test that a snapshot, a reference and a plain id are all accepted as cursors."""
        first = await collection_25.get_page(None, 5)
        last = first.items[-1]

        for cursor in (last, last.reference, "doc004"):
            page = await collection_25.get_page(cursor, 5)
            assert [snap.id for snap in page.items] == [f"doc{i:03d}" for i in range(5, 10)]
            assert page.has_more is True

    @pytest.mark.asyncio
    async def test_last_page(self, collection_25):
        page = await collection_25.get_page("doc019", 10)
        assert len(page.items) == 5
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_cursor_for_deleted_document(self, collection_25):
        """Test that pagination continues after a cursor whose document is gone."""
        assert collection_25.delete("doc004")
        page = await collection_25.get_page("doc004", 2)
        assert [snap.id for snap in page.items] == ["doc005", "doc006"]

    @pytest.mark.asyncio
    async def test_order_follows_later_additions(self):
        """Test that documents added or created after construction are paged in id order."""
        collection = MemoryCollection({"m": {}, "c": {}})
        collection.add("a", {})
        collection.add("z", {})
        collection.add("c", {"replaced": True})
        batch = collection.new_write_batch()
        batch.stage_set("d", {"created": True})
        await batch.commit()

        first = await collection.get_page(None, 3)
        second = await collection.get_page(first.items[-1], 3)

        assert [snap.id for snap in first.items] == ["a", "c", "d"]
        assert [snap.id for snap in second.items] == ["m", "z"]
        assert second.has_more is False
        assert len(collection) == 5
        assert list(collection.to_dict()) == ["a", "c", "d", "m", "z"]

    @pytest.mark.asyncio
    async def test_delete(self, collection_3):
        assert collection_3.delete("doc001") is True
        assert collection_3.delete("doc001") is False
        assert collection_3.get("doc001") is None

        page = await collection_3.get_page(None, 10)
        assert [snap.id for snap in page.items] == ["doc000", "doc002"]
        assert len(collection_3) == 2

    @pytest.mark.asyncio
    async def test_unsupported_cursor(self, collection_3):
        with pytest.raises(ValidationError):
            await collection_3.get_page(3.5, 2)

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self, collection_3):
        page = await collection_3.get_page(None, 1)
        page.items[0].data["n"] = 99
        assert collection_3.get("doc000")["n"] == 0

    def test_snapshot_get(self):
        collection = MemoryCollection({"a": {"address": {"city": "Oslo"}}})
        snapshot = collection._snapshot("a")

        assert snapshot.exists
        assert snapshot.get("address.city") == "Oslo"
        assert snapshot.to_dict() == {"address": {"city": "Oslo"}}
        with pytest.raises(KeyError):
            snapshot.get("address.zip")

    def test_add_requires_id(self):
        with pytest.raises(ValidationError):
            MemoryCollection().add("", {})

    def test_references_compare_by_id(self):
        collection = MemoryCollection(name="users")
        assert collection.document("a") == DocumentReference("a", MemoryCollection())
        assert collection.document("a").path == "users/a"


class TestMemoryWriteBatch:
    """Test staging and committing write batches."""

    @pytest.mark.asyncio
    async def test_nothing_applied_before_commit(self, collection_3):
        batch = collection_3.new_write_batch()
        batch.stage_field_merge(collection_3.document("doc000"), {"status": "done"})

        assert batch.staged_count == 1
        assert collection_3.get("doc000")["status"] == "active"

        await batch.commit()
        assert batch.committed
        assert collection_3.get("doc000")["status"] == "done"

    @pytest.mark.asyncio
    async def test_merge_keeps_other_fields(self):
        collection = MemoryCollection({"a": {"x": 1, "address": {"city": "Oslo", "zip": "0150"}}})
        batch = collection.new_write_batch()
        batch.stage_field_merge("a", {"address.city": "Bergen", "y": 2})
        await batch.commit()

        assert collection.get("a") == {"x": 1, "y": 2, "address": {"city": "Bergen", "zip": "0150"}}

    @pytest.mark.asyncio
    async def test_set_with_and_without_merge(self):
        collection = MemoryCollection({"a": {"x": 1, "nested": {"k": 1}}, "b": {"x": 1}})
        batch = collection.new_write_batch()
        batch.stage_set("a", {"nested": {"j": 2}}, merge=True)
        batch.stage_set("b", {"y": 2})
        batch.stage_set("c", {"z": 3})
        await batch.commit()

        assert collection.get("a") == {"x": 1, "nested": {"k": 1, "j": 2}}
        assert collection.get("b") == {"y": 2}
        assert collection.get("c") == {"z": 3}

    @pytest.mark.asyncio
    async def test_delete_nested_field(self):
        collection = MemoryCollection({"a": {"address": {"city": "Oslo", "zip": "0150"}}})
        batch = collection.new_write_batch()
        batch.stage_field_delete("a", "address.zip")
        batch.stage_field_delete("a", "missing.field")
        await batch.commit()

        assert collection.get("a") == {"address": {"city": "Oslo"}}

    @pytest.mark.asyncio
    async def test_commit_is_atomic(self, collection_3):
        """Test that an update of a missing document discards the whole batch."""
        batch = collection_3.new_write_batch()
        batch.stage_field_path_update("doc000", "status", "done")
        batch.stage_field_path_update("nope", "status", "done")

        with pytest.raises(CommitError, match="nope"):
            await batch.commit()

        assert collection_3.get("doc000")["status"] == "active"
        assert collection_3.get("nope") is None
        assert not batch.committed

    @pytest.mark.asyncio
    async def test_commit_only_once(self, collection_3):
        batch = collection_3.new_write_batch()
        batch.stage_field_path_update("doc000", "n", 10)
        await batch.commit()

        with pytest.raises(CommitError):
            await batch.commit()
        with pytest.raises(OperationError):
            batch.stage_field_path_update("doc001", "n", 11)

    def test_empty_merge_rejected(self, collection_3):
        with pytest.raises(ValidationError):
            collection_3.new_write_batch().stage_field_merge("doc000", {})

    def test_foreign_reference_rejected(self, collection_3):
        other = make_collection(3)
        with pytest.raises(ValidationError, match="another collection"):
            collection_3.new_write_batch().stage_field_path_update(other.document("doc000"), "n", 1)

    @pytest.mark.asyncio
    async def test_empty_commit(self, collection_3):
        batch = collection_3.new_write_batch()
        await batch.commit()
        assert batch.committed
        assert collection_3.to_dict() == make_collection(3).to_dict()
