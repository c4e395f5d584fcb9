"""DataKnobs Traverse Package - Batch traversal and migration of document collections.

The `dataknobs-traverse` package walks arbitrarily large document collections
in bounded-size batches, with optional concurrency and throttling, and builds
mass, predicate-filtered updates on top of that traversal.

Modules:
    traverser: Traverser engine and the create_traverser factory
    migrator: Migrator with update/set/delete_field/rename_field
    actions: Per-document mutation actions and update argument resolution
    fetcher: Cursor-based batch fetching
    throttle: Concurrency gating between batch dispatches
    config: TraversalConfig and its loaders
    traversable: Contracts for document store collaborators
    backends: In-memory and Firestore implementations
    exceptions: Custom exceptions for error handling

Quick Examples:

    Traverse a collection:

    ```python
    from dataknobs_traverse import create_traverser
    from dataknobs_traverse.backends import MemoryCollection

    collection = MemoryCollection({f"doc{i:03d}": {"n": i} for i in range(25)})
    traverser = create_traverser(collection, batch_size=10)

    async def handle(batch):
        print(batch.index, [snap.id for snap in batch])

    result = await traverser.traverse(handle)
    print(result)  # TraversalResult(batch_count=3, doc_count=25)
    ```

    Update matching documents:

    ```python
    from dataknobs_traverse import create_migrator

    migrator = create_migrator(collection, batch_size=10)
    result = await migrator.update("flag", True, lambda snap: snap.get("n") % 2 == 0)
    print(result.updated_doc_count)  # 13
    ```
"""

from .actions import (
    ComputedUpdate,
    DeleteField,
    FieldUpdate,
    RenameField,
    SetDocument,
    StaticUpdate,
    UpdateAction,
    resolve_update_action,
)
from .config import TraversalConfig
from .exceptions import (
    CommitError,
    ConfigurationError,
    FetchError,
    HandlerError,
    OperationError,
    TraverseError,
    UpdateArgumentError,
    ValidationError,
)
from .fetcher import Batch, BatchFetcher
from .migrator import Migrator, UpdateResult, create_migrator
from .throttle import ConcurrencyThrottle
from .traversable import Cursor, Page, Traversable, WriteBatch, WriteBatchProvider
from .traverser import TraversalResult, TraversalState, Traverser, create_traverser

__version__ = "0.1.0"

__all__ = [
    # Engine
    "Traverser",
    "TraversalResult",
    "TraversalState",
    "create_traverser",
    "Batch",
    "BatchFetcher",
    "ConcurrencyThrottle",
    "TraversalConfig",
    # Collaborators
    "Cursor",
    "Page",
    "Traversable",
    "WriteBatch",
    "WriteBatchProvider",
    # Migration
    "Migrator",
    "UpdateResult",
    "create_migrator",
    "UpdateAction",
    "StaticUpdate",
    "FieldUpdate",
    "ComputedUpdate",
    "SetDocument",
    "DeleteField",
    "RenameField",
    "resolve_update_action",
    # Exceptions
    "TraverseError",
    "ValidationError",
    "OperationError",
    "ConfigurationError",
    "FetchError",
    "HandlerError",
    "CommitError",
    "UpdateArgumentError",
]
