"""
Relationship coordinator.

Turns content lifecycle events into inference passes and keeps the
relationship store (and, when attached, the in-memory graph) in step.

Concurrency model: a single event loop. The only synchronisation primitive is
the in-flight registry, mapping a content id to the future of the pass that
is currently running for it. Later callers for the same id await that future
instead of starting new work. Debouncing is timer based: one ``call_later``
handle per id, re-arming replaces the pending payload.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Literal, Protocol

from ..models import ContentItem, Relationship, RelationshipType, relationship_id, utcnow
from ..stores.base import ContentStore, RelationshipStore, require
from .inference import InferenceOptions, RelationshipInferenceEngine

logger = logging.getLogger(__name__)

UpdateAction = Literal["create", "update"]


class GraphSync(Protocol):
    """The subset of the graph surface the coordinator mirrors changes into."""

    def add_relationship(self, relationship: Relationship) -> Any: ...

    def remove_relationship(self, relationship_id: str) -> bool: ...

    def clear_relationships(self) -> None: ...


@dataclass
class CoordinatorOptions:
    enable_auto_processing: bool = True
    processing_delay: float = 1.0  # seconds; 0 processes inline
    batch_processing_interval: float = 30.0
    batch_size: int = 50
    max_relationships_per_content: int = 15
    min_strength: float = 0.3
    relationship_ttl_days: float | None = None

    @classmethod
    def from_settings(cls, s: Any) -> "CoordinatorOptions":
        return cls(
            processing_delay=s.processing_delay,
            batch_processing_interval=s.batch_processing_interval,
            batch_size=s.batch_size,
            max_relationships_per_content=s.max_relationships_per_content,
            min_strength=s.min_strength,
            relationship_ttl_days=s.relationship_ttl_days,
        )


@dataclass
class RelationshipQuery:
    source_id: str | None = None
    target_id: str | None = None
    type: RelationshipType | str | None = None
    min_strength: float | None = None
    min_confidence: float | None = None
    limit: int | None = None


@dataclass
class UpdateTrigger:
    content_id: str
    action: UpdateAction
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ServiceStats:
    total_processed: int = 0
    total_relationships: int = 0
    average_processing_time: float = 0.0  # ms, running mean
    pending_updates: int = 0
    last_processing_time: datetime | None = None


@dataclass
class RelationshipStats:
    total_relationships: int = 0
    relationships_by_type: dict[str, int] = field(default_factory=dict)
    average_strength: float = 0.0
    average_confidence: float = 0.0
    most_connected_content: list[str] = field(default_factory=list)


@dataclass
class ProcessingResult:
    content_id: str
    success: bool
    created: int = 0
    removed: int = 0
    reciprocals_created: int = 0
    error: str | None = None
    processing_time_ms: float = 0.0
    discarded: bool = False


class RelationshipCoordinator:
    def __init__(
        self,
        content_store: ContentStore,
        relationship_store: RelationshipStore,
        engine: RelationshipInferenceEngine | None = None,
        options: CoordinatorOptions | None = None,
        graph: GraphSync | None = None,
    ):
        self.content_store = content_store
        self.relationship_store = relationship_store
        self.options = options or CoordinatorOptions()
        self.engine = engine or RelationshipInferenceEngine(
            options=InferenceOptions(
                min_strength=self.options.min_strength,
                max_relationships=self.options.max_relationships_per_content,
            )
        )
        self.graph = graph

        self._inflight: dict[str, asyncio.Future[ProcessingResult]] = {}
        self._pending: dict[str, UpdateTrigger] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._batch_task: asyncio.Task | None = None
        self.stats = ServiceStats()

    # --- lifecycle ---

    async def initialize(self) -> None:
        """Load the current relationship count into the service statistics."""
        res = await self.relationship_store.list()
        if res.success:
            self.stats.total_relationships = len(res.data or [])
        else:
            logger.error("Failed to initialize relationship coordinator: %s", res.error)

    def start(self) -> None:
        if not self.options.enable_auto_processing or self.options.batch_processing_interval <= 0:
            return
        if self._batch_task is None or self._batch_task.done():
            self._batch_task = asyncio.get_running_loop().create_task(self._batch_loop())

    async def stop(self) -> None:
        if self._batch_task is not None:
            self._batch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._batch_task
            self._batch_task = None

    async def close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._pending.clear()
        # in-flight passes keep running; clearing the registry discards their results
        self._inflight.clear()
        self._update_pending_stats()
        await self.stop()

    async def _batch_loop(self) -> None:
        while True:
            await asyncio.sleep(self.options.batch_processing_interval)
            try:
                await self.process_pending_updates()
            except Exception as e:
                logger.error("Batch relationship processing failed: %s", e)

    # --- content lifecycle events ---

    async def on_content_created(self, item: ContentItem) -> ProcessingResult | None:
        return await self._on_content_changed(item, "create")

    async def on_content_updated(self, item: ContentItem) -> ProcessingResult | None:
        return await self._on_content_changed(item, "update")

    async def _on_content_changed(self, item: ContentItem, action: UpdateAction) -> ProcessingResult | None:
        if not self.options.enable_auto_processing:
            return None
        if not item or not item.id:
            logger.warning("Ignoring %s event for content without id", action)
            return None
        if self.options.processing_delay > 0:
            self._schedule(item.id, action)
            return None
        return await self.process_content_relationships(item.id)

    async def on_content_deleted(self, content_id: str) -> int:
        """Cascade-delete every relationship touching ``content_id``; returns the removed count."""
        self._cancel_pending(content_id)
        # A pass still running for this id finds its registry entry gone and stops
        # writing. The cascade waits for it so nothing it already wrote survives.
        running = self._inflight.pop(content_id, None)
        if running is not None:
            await asyncio.wait([running])

        removed = 0
        seen: set[str] = set()
        for lister in (self.relationship_store.list_by_source, self.relationship_store.list_by_target):
            res = await lister(content_id)
            if not res.success:
                logger.error("Failed to list relationships for deleted content %s: %s", content_id, res.error)
                continue
            for rel in res.data or []:
                if rel.id in seen:
                    continue
                seen.add(rel.id)
                if await self._delete_relationship(rel.id):
                    removed += 1

        self.stats.total_relationships = max(0, self.stats.total_relationships - removed)
        logger.info("Removed %d relationships for deleted content %s", removed, content_id)
        return removed

    # --- debounce ---

    def _schedule(self, content_id: str, action: UpdateAction) -> None:
        self._pending[content_id] = UpdateTrigger(content_id, action)
        self._update_pending_stats()
        if content_id in self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers[content_id] = loop.call_later(self.options.processing_delay, self._fire, content_id)

    def _fire(self, content_id: str) -> None:
        self._timers.pop(content_id, None)
        trigger = self._pending.pop(content_id, None)
        self._update_pending_stats()
        if trigger is None:
            return
        logger.debug("Debounce window elapsed for %s (%s)", content_id, trigger.action)
        task = asyncio.get_running_loop().create_task(self.process_content_relationships(content_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_pending(self, content_id: str) -> None:
        handle = self._timers.pop(content_id, None)
        if handle is not None:
            handle.cancel()
        self._pending.pop(content_id, None)
        self._update_pending_stats()

    def _update_pending_stats(self) -> None:
        self.stats.pending_updates = len(self._pending)

    # --- processing ---

    async def trigger_relationship_processing(self, content_id: str) -> ProcessingResult:
        """Process ``content_id`` now, absorbing any debounced trigger for it."""
        self._cancel_pending(content_id)
        return await self.process_content_relationships(content_id)

    async def process_content_relationships(self, content_id: str) -> ProcessingResult:
        existing = self._inflight.get(content_id)
        if existing is not None:
            return await asyncio.shield(existing)

        future: asyncio.Future[ProcessingResult] = asyncio.get_running_loop().create_future()
        self._inflight[content_id] = future
        try:
            result = await self._process(content_id, future)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            logger.error("Relationship processing failed for %s: %s", content_id, e)
            result = ProcessingResult(content_id, False, error=str(e))
        finally:
            if self._inflight.get(content_id) is future:
                del self._inflight[content_id]
        future.set_result(result)
        return result

    async def process_pending_updates(self) -> list[ProcessingResult]:
        pending_ids = list(self._pending)
        if not pending_ids:
            return []

        logger.info("Processing %d pending relationship updates", len(pending_ids))
        batch_size = max(1, self.options.batch_size)
        results: list[ProcessingResult] = []
        for i in range(0, len(pending_ids), batch_size):
            batch = pending_ids[i : i + batch_size]
            for content_id in batch:
                self._cancel_pending(content_id)
            results.extend(
                await asyncio.gather(*(self.process_content_relationships(cid) for cid in batch))
            )
        return results

    async def _process(self, content_id: str, token: asyncio.Future) -> ProcessingResult:
        """One inference pass for ``content_id``.

        ``token`` is this pass's registry future. Once the registry no longer
        maps the id to it (delete, close) the pass stops before its next write
        and reports a discarded result.
        """
        t0 = time.perf_counter()

        def failed(error: str) -> ProcessingResult:
            return ProcessingResult(
                content_id, False, error=error, processing_time_ms=(time.perf_counter() - t0) * 1000.0
            )

        def current() -> bool:
            return self._inflight.get(content_id) is token

        def discarded() -> ProcessingResult:
            logger.info("Discarding relationship result for %s: registry entry cleared", content_id)
            result = failed("Result discarded")
            result.discarded = True
            return result

        read = await self.content_store.read(content_id)
        if not read.success or read.data is None:
            logger.warning("Content not found for relationship processing: %s", content_id)
            return failed(read.error or "Content not found")
        item = read.data

        pool = await self.content_store.list()
        if not pool.success:
            logger.error("Failed to load candidate content for %s: %s", content_id, pool.error)
            return failed(pool.error or "Failed to load content")

        inferred = self.engine.infer(item, pool.data or [], cap=self.options.max_relationships_per_content)
        if not inferred.success:
            logger.warning("Relationship inference failed for %s: %s", content_id, inferred.error)
            return failed(inferred.error or "Inference failed")

        if not current():
            return discarded()

        previous = await self.relationship_store.list_by_source(content_id)
        inbound = await self.relationship_store.list_by_target(content_id)
        for res in (previous, inbound):
            if not res.success:
                logger.error("Failed to load existing relationships for %s: %s", content_id, res.error)
                return failed(res.error or "Failed to load relationships")

        # A superseded outbound record takes its mirrored reciprocal with it.
        new_ids = {r.id for r in inferred.relationships}
        previous_ids = {r.id for r in previous.data or []}
        inbound_ids = {r.id for r in inbound.data or []}
        stale_ids: list[str] = []
        for rel in previous.data or []:
            if rel.id in new_ids:
                continue
            stale_ids.append(rel.id)
            mirror_id = relationship_id(rel.target_id, rel.source_id)
            if mirror_id in inbound_ids:
                stale_ids.append(mirror_id)

        removed = 0
        for stale_id in stale_ids:
            if not current():
                return discarded()
            if await self._delete_relationship(stale_id):
                removed += 1

        if not current():
            return discarded()
        stored = await self.relationship_store.bulk_create(inferred.relationships)
        if not stored.success:
            logger.error("Failed to store relationships for %s: %s", content_id, stored.error)
            return failed(stored.error or "Failed to store relationships")
        if not current():
            return discarded()
        if self.graph is not None:
            for rel in inferred.relationships:
                self.graph.add_relationship(rel)

        mirrored = await self._ensure_reciprocals(inferred.relationships, current)
        if not current():
            return discarded()

        added = len(new_ids - previous_ids)
        elapsed = (time.perf_counter() - t0) * 1000.0
        self._record_pass(elapsed, added + len(mirrored) - removed)
        return ProcessingResult(
            content_id,
            True,
            created=len(inferred.relationships),
            removed=removed,
            reciprocals_created=len(mirrored),
            processing_time_ms=elapsed,
        )

    async def _ensure_reciprocals(
        self, relationships: list[Relationship], current: Callable[[], bool]
    ) -> list[Relationship]:
        created: list[Relationship] = []
        targets_by_source: dict[str, set[str]] = {}
        for rel in relationships:
            if rel.strength < self.options.min_strength or rel.source_id == rel.target_id:
                continue
            mirror_source = rel.target_id
            if mirror_source not in targets_by_source:
                res = await self.relationship_store.list_by_source(mirror_source)
                if not res.success:
                    logger.warning("Cannot verify reciprocal for %s: %s", rel.id, res.error)
                    continue
                targets_by_source[mirror_source] = {r.target_id for r in res.data or []}
            if rel.source_id in targets_by_source[mirror_source]:
                continue

            if not current():
                break
            mirror = rel.reciprocal()
            res = await self.relationship_store.create(mirror)
            if not res.success:
                logger.warning("Failed to create reciprocal %s: %s", mirror.id, res.error)
                continue
            targets_by_source[mirror_source].add(rel.source_id)
            created.append(mirror)
            if self.graph is not None and current():
                self.graph.add_relationship(mirror)
        return created


    async def _delete_relationship(self, relationship_id: str) -> bool:
        res = await self.relationship_store.delete(relationship_id)
        if not res.success:
            logger.warning("Failed to delete relationship %s: %s", relationship_id, res.error)
            return False
        if self.graph is not None:
            self.graph.remove_relationship(relationship_id)
        return True

    def _record_pass(self, elapsed_ms: float, delta: int) -> None:
        s = self.stats
        s.total_processed += 1
        s.total_relationships = max(0, s.total_relationships + delta)
        s.average_processing_time += (elapsed_ms - s.average_processing_time) / s.total_processed
        s.last_processing_time = utcnow()

    # --- whole-store operations ---

    async def rebuild_all_relationships(self) -> int:
        """Recompute every relationship from the full content set.

        Store failures raise ``StoreError``: a half-rebuilt store is worse than
        a failed call.
        """
        logger.info("Rebuilding all relationships...")
        require(await self.relationship_store.clear(), "clear relationships")
        items = require(await self.content_store.list(), "load content for relationship rebuild") or []

        collected: dict[str, Relationship] = {}
        for i, item in enumerate(items, start=1):
            result = self.engine.infer(item, items, cap=self.options.max_relationships_per_content)
            if not result.success:
                logger.warning("Skipping %s during rebuild: %s", getattr(item, "id", None), result.error)
                continue
            for rel in result.relationships:
                collected[rel.id] = rel
            if i % 10 == 0:
                logger.info("Processed %d/%d content items", i, len(items))

        for rel in list(collected.values()):
            mirror = rel.reciprocal()
            if rel.strength >= self.options.min_strength and mirror.id not in collected:
                collected[mirror.id] = mirror

        relationships = list(collected.values())
        require(await self.relationship_store.bulk_create(relationships), "store rebuilt relationships")

        if self.graph is not None:
            self.graph.clear_relationships()
            for rel in relationships:
                self.graph.add_relationship(rel)

        self.stats.total_relationships = len(relationships)
        logger.info("Rebuild complete. Created %d relationships.", len(relationships))
        return len(relationships)

    async def perform_maintenance(self) -> int:
        """Drop relationships older than the configured TTL; returns how many were removed."""
        ttl = self.options.relationship_ttl_days
        if not ttl:
            return 0

        res = await self.relationship_store.list()
        if not res.success:
            logger.error("Failed to perform relationship maintenance: %s", res.error)
            return 0

        cutoff = utcnow() - timedelta(days=ttl)
        removed = 0
        for rel in res.data or []:
            if rel.created_at < cutoff and await self._delete_relationship(rel.id):
                removed += 1

        if removed:
            logger.info("Cleaned up %d expired relationships", removed)
        self.stats.total_relationships = max(0, self.stats.total_relationships - removed)
        return removed

    # --- queries ---

    async def query_relationships(self, criteria: RelationshipQuery | None = None, **kwargs: Any) -> list[Relationship]:
        q = criteria or RelationshipQuery(**kwargs)
        rel_type = RelationshipType(q.type) if q.type is not None else None

        if q.source_id:
            res = await self.relationship_store.list_by_source(q.source_id)
        elif q.target_id:
            res = await self.relationship_store.list_by_target(q.target_id)
        elif rel_type is not None:
            res = await self.relationship_store.list_by_type(rel_type)
        else:
            res = await self.relationship_store.list()
        if not res.success:
            logger.error("Failed to query relationships: %s", res.error)
            return []

        rows = list(res.data or [])
        if q.source_id:
            rows = [r for r in rows if r.source_id == q.source_id]
        if q.target_id:
            rows = [r for r in rows if r.target_id == q.target_id]
        if rel_type is not None:
            rows = [r for r in rows if r.type is rel_type]
        if q.min_strength is not None:
            rows = [r for r in rows if r.strength >= q.min_strength]
        if q.min_confidence is not None:
            rows = [r for r in rows if r.confidence >= q.min_confidence]

        rows.sort(key=lambda r: r.strength, reverse=True)
        if q.limit:
            rows = rows[: q.limit]
        return rows

    async def get_related_content(self, content_id: str, limit: int = 10) -> list[Relationship]:
        return await self.query_relationships(source_id=content_id, limit=limit, min_strength=0.3)

    async def get_relationship_stats(self) -> RelationshipStats:
        res = await self.relationship_store.list()
        if not res.success:
            logger.error("Failed to compute relationship stats: %s", res.error)
            return RelationshipStats()
        rows = res.data or []
        if not rows:
            return RelationshipStats()

        by_type = Counter(r.type.value for r in rows)
        by_source = Counter(r.source_id for r in rows)
        return RelationshipStats(
            total_relationships=len(rows),
            relationships_by_type=dict(by_type),
            average_strength=sum(r.strength for r in rows) / len(rows),
            average_confidence=sum(r.confidence for r in rows) / len(rows),
            most_connected_content=[cid for cid, _ in by_source.most_common(10)],
        )

    def get_service_stats(self) -> ServiceStats:
        return replace(self.stats)

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def is_processing(self, content_id: str) -> bool:
        return content_id in self._inflight
