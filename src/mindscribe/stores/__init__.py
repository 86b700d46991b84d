"""Store collaborators: contracts plus in-memory and SQLite adapters."""

from .base import ContentStore, RelationshipStore, SnapshotSink, StoreError, StoreResult, require
from .memory import InMemoryContentStore, InMemoryRelationshipStore, InMemorySnapshotSink
from .sqlite import (
    SQLiteContentStore,
    SQLiteGraphDB,
    SQLiteRelationshipStore,
    SQLiteSnapshotSink,
    open_sqlite_stores,
)

__all__ = [
    "ContentStore",
    "RelationshipStore",
    "SnapshotSink",
    "StoreError",
    "StoreResult",
    "require",
    "InMemoryContentStore",
    "InMemoryRelationshipStore",
    "InMemorySnapshotSink",
    "SQLiteContentStore",
    "SQLiteGraphDB",
    "SQLiteRelationshipStore",
    "SQLiteSnapshotSink",
    "open_sqlite_stores",
]
