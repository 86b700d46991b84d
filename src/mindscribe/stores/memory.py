from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import replace
from typing import Any

from ..models import ContentItem, Relationship, RelationshipType, parse_datetime, utcnow
from .base import StoreResult


class _InMemoryBase:
    """Shared plumbing: every call suspends once so callers interleave like real I/O."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency

    async def _io(self) -> float:
        t0 = time.perf_counter()
        await asyncio.sleep(self.latency)
        return t0

    @staticmethod
    def _elapsed(t0: float) -> float:
        return (time.perf_counter() - t0) * 1000.0


class InMemoryContentStore(_InMemoryBase):
    """Dictionary-backed content store, mostly for tests and the CLI."""

    def __init__(self, items: list[ContentItem] | None = None, latency: float = 0.0):
        super().__init__(latency)
        self._items: dict[str, ContentItem] = {}
        for item in items or []:
            self._items[item.id] = item

    def put(self, item: ContentItem) -> None:
        self._items[item.id] = item

    def remove(self, content_id: str) -> bool:
        return self._items.pop(content_id, None) is not None

    async def read(self, content_id: str) -> StoreResult[ContentItem]:
        t0 = await self._io()
        item = self._items.get(content_id)
        if item is None:
            return StoreResult(False, error="Content not found", operation_time_ms=self._elapsed(t0))
        return StoreResult(True, data=item, operation_time_ms=self._elapsed(t0))

    async def list(self, filter: dict[str, Any] | None = None) -> StoreResult[list[ContentItem]]:
        t0 = await self._io()
        items = list(self._items.values())
        for key, value in (filter or {}).items():
            items = [i for i in items if getattr(i, key, None) == value]
        return StoreResult(True, data=items, operation_time_ms=self._elapsed(t0))


class InMemoryRelationshipStore(_InMemoryBase):
    """Dictionary-backed relationship store with source/target/type lookups.

    ``create`` refuses duplicate ids; ``bulk_create`` overwrites.
    """

    def __init__(self, latency: float = 0.0):
        super().__init__(latency)
        self._records: dict[str, Relationship] = {}

    async def create(self, relationship: Relationship) -> StoreResult[Relationship]:
        t0 = await self._io()
        if relationship.id in self._records:
            return StoreResult(
                False,
                error=f"Relationship already exists: {relationship.id}",
                operation_time_ms=self._elapsed(t0),
            )
        self._records[relationship.id] = relationship
        return StoreResult(True, data=relationship, operation_time_ms=self._elapsed(t0))

    async def read(self, relationship_id: str) -> StoreResult[Relationship]:
        t0 = await self._io()
        rel = self._records.get(relationship_id)
        if rel is None:
            return StoreResult(False, error="Relationship not found", operation_time_ms=self._elapsed(t0))
        return StoreResult(True, data=rel, operation_time_ms=self._elapsed(t0))

    async def update(self, relationship_id: str, updates: dict[str, Any]) -> StoreResult[Relationship]:
        t0 = await self._io()
        rel = self._records.get(relationship_id)
        if rel is None:
            return StoreResult(
                False, error="Relationship not found for update", operation_time_ms=self._elapsed(t0)
            )
        changes = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
        if "last_updated" in changes:
            changes["last_updated"] = parse_datetime(changes["last_updated"])
        else:
            changes["last_updated"] = utcnow()
        updated = replace(rel, **changes)
        self._records[relationship_id] = updated
        return StoreResult(True, data=updated, operation_time_ms=self._elapsed(t0))

    async def delete(self, relationship_id: str) -> StoreResult[None]:
        t0 = await self._io()
        self._records.pop(relationship_id, None)
        return StoreResult(True, operation_time_ms=self._elapsed(t0))

    async def list_by_source(self, source_id: str) -> StoreResult[list[Relationship]]:
        t0 = await self._io()
        rows = [r for r in self._records.values() if r.source_id == source_id]
        return StoreResult(True, data=rows, operation_time_ms=self._elapsed(t0))

    async def list_by_target(self, target_id: str) -> StoreResult[list[Relationship]]:
        t0 = await self._io()
        rows = [r for r in self._records.values() if r.target_id == target_id]
        return StoreResult(True, data=rows, operation_time_ms=self._elapsed(t0))

    async def list_by_type(self, rel_type: RelationshipType) -> StoreResult[list[Relationship]]:
        t0 = await self._io()
        rel_type = RelationshipType(rel_type)
        rows = [r for r in self._records.values() if r.type is rel_type]
        return StoreResult(True, data=rows, operation_time_ms=self._elapsed(t0))

    async def list(self) -> StoreResult[list[Relationship]]:
        t0 = await self._io()
        return StoreResult(True, data=list(self._records.values()), operation_time_ms=self._elapsed(t0))

    async def bulk_create(self, relationships: list[Relationship]) -> StoreResult[int]:
        t0 = await self._io()
        for rel in relationships:
            self._records[rel.id] = rel
        return StoreResult(True, data=len(relationships), operation_time_ms=self._elapsed(t0))

    async def clear(self) -> StoreResult[None]:
        t0 = await self._io()
        self._records.clear()
        return StoreResult(True, operation_time_ms=self._elapsed(t0))


class InMemorySnapshotSink(_InMemoryBase):
    """Holds one snapshot blob; stores a deep copy so later graph mutation cannot leak in."""

    def __init__(self, latency: float = 0.0):
        super().__init__(latency)
        self.blob: dict[str, Any] | None = None
        self.saves = 0

    async def load(self) -> StoreResult[dict[str, Any] | None]:
        t0 = await self._io()
        return StoreResult(True, data=copy.deepcopy(self.blob), operation_time_ms=self._elapsed(t0))

    async def save(self, blob: dict[str, Any]) -> StoreResult[None]:
        t0 = await self._io()
        self.blob = copy.deepcopy(blob)
        self.saves += 1
        return StoreResult(True, operation_time_ms=self._elapsed(t0))
