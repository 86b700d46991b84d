"""
Graph lifecycle manager.

Owns one ``KnowledgeGraph`` and keeps it in line with the stores: initial
load (snapshot first, full rebuild as fallback), incremental content and
relationship updates, periodic snapshot saves and periodic layout refresh.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..models import ContentItem, Relationship, format_datetime, utcnow
from ..stores.base import ContentStore, RelationshipStore, SnapshotSink, require
from .graph import KnowledgeGraph
from .models import ContentCluster, GraphEdge, GraphNode, GraphQueryOptions, GraphQueryResult, GraphStats

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass
class GraphManagerOptions:
    auto_save: bool = True
    save_interval: float = 30.0
    layout_update_interval: float = 60.0
    layout_refresh_iterations: int = 50
    initial_layout_iterations: int = 200
    max_nodes: int = 1000
    enable_clustering: bool = True

    @classmethod
    def from_settings(cls, s: Any) -> "GraphManagerOptions":
        return cls(
            auto_save=s.auto_save,
            save_interval=s.save_interval,
            layout_update_interval=s.layout_update_interval,
            layout_refresh_iterations=s.layout_refresh_iterations,
            initial_layout_iterations=s.initial_layout_iterations,
            max_nodes=s.max_nodes,
            enable_clustering=s.enable_clustering,
        )


@dataclass
class GraphUpdateResult:
    success: bool
    nodes_added: int = 0
    edges_added: int = 0
    nodes_removed: int = 0
    edges_removed: int = 0
    clusters_created: int = 0
    processing_time_ms: float = 0.0
    error: str | None = None


@dataclass
class ManagerStats:
    graph_stats: GraphStats
    is_initialized: bool
    last_save_time: datetime | None
    last_layout_update: datetime | None
    auto_save_enabled: bool
    max_nodes: int
    clustering_enabled: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "graph_stats": self.graph_stats.to_dict(),
            "is_initialized": self.is_initialized,
            "last_save_time": format_datetime(self.last_save_time),
            "last_layout_update": format_datetime(self.last_layout_update),
            "auto_save_enabled": self.auto_save_enabled,
            "max_nodes": self.max_nodes,
            "clustering_enabled": self.clustering_enabled,
        }


class GraphManager:
    def __init__(
        self,
        content_store: ContentStore,
        relationship_store: RelationshipStore,
        snapshot_sink: SnapshotSink,
        options: GraphManagerOptions | None = None,
        graph: KnowledgeGraph | None = None,
    ):
        self.content_store = content_store
        self.relationship_store = relationship_store
        self.snapshot_sink = snapshot_sink
        self.options = options or GraphManagerOptions()
        self.graph = graph or KnowledgeGraph()

        self.is_initialized = False
        self.last_save_time: datetime | None = None
        self.last_layout_update: datetime | None = None
        self._snapshot_version = SNAPSHOT_VERSION
        self._save_task: asyncio.Task | None = None
        self._layout_task: asyncio.Task | None = None

    # --- lifecycle ---

    async def initialize(self) -> GraphUpdateResult:
        """Load the persisted snapshot, or rebuild from the stores when there is none.

        A failing store during the rebuild raises ``StoreError``.
        """
        t0 = time.perf_counter()
        loaded = await self.load_graph()
        if not loaded or len(self.graph) == 0:
            logger.info("No usable graph snapshot; rebuilding from stores")
            result = await self.rebuild_graph()
        else:
            result = GraphUpdateResult(
                True,
                nodes_added=len(self.graph),
                edges_added=len(self.graph.all_edges()),
                clusters_created=len(self.graph.all_clusters()),
            )
        self.is_initialized = True
        result.processing_time_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            "Knowledge graph ready: %d nodes, %d edges, %d clusters",
            result.nodes_added,
            result.edges_added,
            result.clusters_created,
        )
        return result

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self.options.auto_save and self.options.save_interval > 0 and self._save_task is None:
            self._save_task = loop.create_task(self._save_loop())
        if self.options.layout_update_interval > 0 and self._layout_task is None:
            self._layout_task = loop.create_task(self._layout_loop())

    async def close(self) -> None:
        for task in (self._save_task, self._layout_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._save_task = None
        self._layout_task = None
        self.graph.clear()
        self.is_initialized = False

    async def _save_loop(self) -> None:
        while True:
            await asyncio.sleep(self.options.save_interval)
            await self.save_graph()

    async def _layout_loop(self) -> None:
        while True:
            await asyncio.sleep(self.options.layout_update_interval)
            try:
                self.update_layout(self.options.layout_refresh_iterations)
            except Exception as e:
                logger.error("Layout refresh failed: %s", e)

    # --- rebuild ---

    async def rebuild_graph(self) -> GraphUpdateResult:
        t0 = time.perf_counter()
        self.graph.clear()

        items = require(await self.content_store.list(), "load content for graph rebuild") or []
        if len(items) > self.options.max_nodes:
            # keep the most recent items; ids break ties so truncation is stable
            items = sorted(items, key=lambda i: (-i.created_at.timestamp(), i.id))[: self.options.max_nodes]
            logger.info("Graph capped at %d nodes", self.options.max_nodes)
        for item in items:
            self.graph.add_content(item)

        relationships = require(await self.relationship_store.list(), "load relationships for graph rebuild") or []
        edges_added = sum(1 for rel in relationships if self.graph.add_relationship(rel) is not None)

        clusters = self.graph.create_clusters() if self.options.enable_clustering else []
        self.graph.update_layout(self.options.initial_layout_iterations)
        self.last_layout_update = utcnow()

        return GraphUpdateResult(
            True,
            nodes_added=len(items),
            edges_added=edges_added,
            clusters_created=len(clusters),
            processing_time_ms=(time.perf_counter() - t0) * 1000.0,
        )

    # --- persistence ---

    async def save_graph(self) -> bool:
        # Export before the first suspension point so the snapshot is point-in-time.
        blob = self.export_graph_data()
        try:
            res = await self.snapshot_sink.save(blob)
        except Exception as e:
            logger.error("Failed to save knowledge graph: %s", e)
            return False
        if not res.success:
            logger.error("Failed to save knowledge graph: %s", res.error)
            return False
        self.last_save_time = utcnow()
        return True

    async def force_save(self) -> bool:
        return await self.save_graph()

    async def load_graph(self) -> bool:
        try:
            res = await self.snapshot_sink.load()
        except Exception as e:
            logger.error("Failed to load knowledge graph: %s", e)
            return False
        if not res.success:
            logger.error("Failed to load knowledge graph: %s", res.error)
            return False
        if not res.data:
            return False
        return self.import_graph_data(res.data)

    def export_graph_data(self) -> dict[str, Any]:
        return {
            **self.graph.export_graph(),
            "last_updated": format_datetime(utcnow()),
            "version": self._snapshot_version,
        }

    def import_graph_data(self, blob: dict[str, Any]) -> bool:
        try:
            self.graph.import_graph(blob)
        except (KeyError, ValueError, TypeError) as e:
            logger.error("Failed to import knowledge graph: %s", e)
            return False
        self._snapshot_version = blob.get("version", SNAPSHOT_VERSION)
        return True

    # --- incremental updates ---

    async def add_content(self, item: ContentItem) -> GraphUpdateResult:
        """Add (or refresh) the node for ``item`` and attach its stored relationships."""
        t0 = time.perf_counter()
        existed = self.graph.get_node_by_content_id(item.id) is not None
        self.graph.add_content(item)

        edges_added = 0
        for lister in (self.relationship_store.list_by_source, self.relationship_store.list_by_target):
            res = await lister(item.id)
            if not res.success:
                logger.error("Failed to add relationships for content %s: %s", item.id, res.error)
                continue
            edges_added += sum(1 for rel in res.data or [] if self.graph.add_relationship(rel) is not None)

        clusters = self.graph.create_clusters() if self.options.enable_clustering else []
        return GraphUpdateResult(
            True,
            nodes_added=0 if existed else 1,
            edges_added=edges_added,
            clusters_created=len(clusters),
            processing_time_ms=(time.perf_counter() - t0) * 1000.0,
        )

    async def update_content(self, item: ContentItem) -> GraphUpdateResult:
        return await self.add_content(item)

    def remove_content(self, content_id: str) -> bool:
        return self.graph.remove_content(content_id)

    def add_relationship(self, relationship: Relationship) -> GraphEdge | None:
        return self.graph.add_relationship(relationship)

    def remove_relationship(self, relationship_id: str) -> bool:
        return self.graph.remove_relationship(relationship_id)

    def clear_relationships(self) -> None:
        self.graph.clear_edges()

    # --- read surface ---

    def find_related_content(self, content_id: str, max_results: int = 10, **kwargs: Any) -> list[GraphNode]:
        return self.graph.find_related(content_id, max_results, **kwargs)

    def query_graph(self, options: GraphQueryOptions | None = None) -> GraphQueryResult:
        return self.graph.query_graph(options)

    def get_graph_stats(self) -> GraphStats:
        return self.graph.get_stats()

    def get_content_cluster(self, content_id: str) -> ContentCluster | None:
        return self.graph.get_cluster(content_id)

    def get_all_clusters(self) -> list[ContentCluster]:
        return self.graph.all_clusters()

    def update_layout(self, iterations: int = 100) -> None:
        self.graph.update_layout(iterations)
        self.last_layout_update = utcnow()

    def get_manager_stats(self) -> ManagerStats:
        return ManagerStats(
            graph_stats=self.get_graph_stats(),
            is_initialized=self.is_initialized,
            last_save_time=self.last_save_time,
            last_layout_update=self.last_layout_update,
            auto_save_enabled=self.options.auto_save,
            max_nodes=self.options.max_nodes,
            clustering_enabled=self.options.enable_clustering,
        )
