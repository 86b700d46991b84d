"""
Collaborator contracts consumed by the relationship and graph components.

Every store call is asynchronous and reports failures through a
``StoreResult`` instead of raising. Callers that cannot tolerate a partial
outcome turn a failed result into a ``StoreError`` with ``require``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from ..models import ContentItem, Relationship, RelationshipType

T = TypeVar("T")


class StoreError(RuntimeError):
    """A collaborator failure that must reach the caller."""


@dataclass
class StoreResult(Generic[T]):
    """Standard result shape for every store operation."""
    success: bool
    data: T | None = None
    error: str | None = None
    operation_time_ms: float = 0.0


def require(result: StoreResult[T], action: str) -> T:
    """Return ``result.data`` or raise ``StoreError`` describing ``action``."""
    if not result.success:
        raise StoreError(f"Failed to {action}: {result.error or 'unknown error'}")
    return result.data


class ContentStore(Protocol):
    """Keyed storage of saved content items (read side only)."""

    async def read(self, content_id: str) -> StoreResult[ContentItem]: ...

    async def list(self, filter: dict[str, Any] | None = None) -> StoreResult[list[ContentItem]]: ...


class RelationshipStore(Protocol):
    """Keyed storage of relationship records, indexed by source, target and type."""

    async def create(self, relationship: Relationship) -> StoreResult[Relationship]: ...

    async def read(self, relationship_id: str) -> StoreResult[Relationship]: ...

    async def update(self, relationship_id: str, updates: dict[str, Any]) -> StoreResult[Relationship]: ...

    async def delete(self, relationship_id: str) -> StoreResult[None]: ...

    async def list_by_source(self, source_id: str) -> StoreResult[list[Relationship]]: ...

    async def list_by_target(self, target_id: str) -> StoreResult[list[Relationship]]: ...

    async def list_by_type(self, rel_type: RelationshipType) -> StoreResult[list[Relationship]]: ...

    async def list(self) -> StoreResult[list[Relationship]]: ...

    async def bulk_create(self, relationships: list[Relationship]) -> StoreResult[int]: ...

    async def clear(self) -> StoreResult[None]: ...


class SnapshotSink(Protocol):
    """Single-key persistence for graph snapshots, overwritten on every save."""

    async def load(self) -> StoreResult[dict[str, Any] | None]: ...

    async def save(self, blob: dict[str, Any]) -> StoreResult[None]: ...
