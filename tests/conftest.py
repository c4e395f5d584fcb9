"""Pytest configuration for dataknobs_traverse tests."""

import sys
from pathlib import Path

import pytest

# Add the package source to path for testing
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from dataknobs_traverse.backends.memory import MemoryCollection  # noqa: E402
from dataknobs_traverse.traversable import Page, Traversable  # noqa: E402


def make_collection(count: int, **extra) -> MemoryCollection:
    """Create a collection of ``count`` documents with ids doc000, doc001, ..."""
    return MemoryCollection(
        {f"doc{i:03d}": {"n": i, "status": "active", **extra} for i in range(count)}
    )


class RecordingCollection(MemoryCollection):
    """Memory collection that logs page requests and can fail a given fetch."""

    def __init__(self, documents=None, fail_on_fetch: int | None = None, log: list | None = None):
        super().__init__(documents)
        self.requests: list[tuple[str | None, int]] = []
        self.fail_on_fetch = fail_on_fetch
        self.log = log if log is not None else []

    async def get_page(self, cursor, size):
        fetch_index = len(self.requests)
        self.requests.append((cursor.id if cursor is not None else None, size))
        self.log.append(("fetch", fetch_index))
        if self.fail_on_fetch == fetch_index:
            raise ConnectionError("store unavailable")
        return await super().get_page(cursor, size)


class ListTraversable(Traversable):
    """Traversable over a plain sorted list of integers; the cursor is the last value."""

    def __init__(self, values, oversize: int = 0):
        self.values = sorted(values)
        self.oversize = oversize
        self.calls = 0

    async def get_page(self, cursor, size):
        self.calls += 1
        start = 0 if cursor is None else self.values.index(cursor) + 1
        items = self.values[start:start + size + self.oversize]
        return Page(items=items, has_more=start + size < len(self.values))


@pytest.fixture
def collection_25():
    """25 documents, doc000 .. doc024."""
    return make_collection(25)


@pytest.fixture
def collection_3():
    """3 documents, doc000 .. doc002."""
    return make_collection(3)
