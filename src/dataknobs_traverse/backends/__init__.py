"""Document store backends.

The Firestore backend is imported from
``dataknobs_traverse.backends.firestore`` and requires the ``firestore`` extra.
"""

from .memory import DocumentReference, DocumentSnapshot, MemoryCollection, MemoryWriteBatch

__all__ = [
    "DocumentReference",
    "DocumentSnapshot",
    "MemoryCollection",
    "MemoryWriteBatch",
]
