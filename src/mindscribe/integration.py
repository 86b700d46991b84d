"""
Service wiring.

One explicitly constructed ``MindScribeService`` owns the stores, the graph
manager and the relationship coordinator, and routes content lifecycle events
to both. Hosts (API, CLI) receive the instance they were built with; there is
no global graph.
"""

from __future__ import annotations

import logging
from typing import Any

from .knowledge_graph.manager import GraphManager, GraphManagerOptions, GraphUpdateResult
from .knowledge_graph.models import RelatedNode
from .models import ContentItem
from .relationships.coordinator import CoordinatorOptions, ProcessingResult, RelationshipCoordinator
from .settings import MindScribeSettings, settings as default_settings
from .stores.base import ContentStore, RelationshipStore, SnapshotSink
from .stores.memory import InMemoryContentStore, InMemoryRelationshipStore, InMemorySnapshotSink
from .stores.sqlite import open_sqlite_stores

logger = logging.getLogger(__name__)


class MindScribeService:
    def __init__(
        self,
        content_store: ContentStore,
        relationship_store: RelationshipStore,
        snapshot_sink: SnapshotSink,
        coordinator_options: CoordinatorOptions | None = None,
        manager_options: GraphManagerOptions | None = None,
    ):
        self.content_store = content_store
        self.relationship_store = relationship_store
        self.snapshot_sink = snapshot_sink
        self.manager = GraphManager(content_store, relationship_store, snapshot_sink, options=manager_options)
        self.coordinator = RelationshipCoordinator(
            content_store,
            relationship_store,
            options=coordinator_options,
            graph=self.manager,
        )
        self.started = False

    @classmethod
    def from_settings(cls, s: MindScribeSettings | None = None, in_memory: bool = False) -> "MindScribeService":
        s = s or default_settings
        if in_memory:
            content, relationships, snapshots = (
                InMemoryContentStore(),
                InMemoryRelationshipStore(),
                InMemorySnapshotSink(),
            )
        else:
            content, relationships, snapshots = open_sqlite_stores(s.db_path, snapshot_key=s.snapshot_key)
        return cls(
            content,
            relationships,
            snapshots,
            coordinator_options=CoordinatorOptions.from_settings(s),
            manager_options=GraphManagerOptions.from_settings(s),
        )

    @property
    def graph(self):
        return self.manager.graph

    async def start(self, background: bool = True) -> GraphUpdateResult:
        await self.coordinator.initialize()
        result = await self.manager.initialize()
        if background:
            self.coordinator.start()
            self.manager.start()
        self.started = True
        return result

    async def close(self) -> None:
        await self.coordinator.close()
        if self.started and self.manager.options.auto_save:
            await self.manager.save_graph()
        await self.manager.close()
        self.started = False

    # --- content lifecycle ---

    async def on_content_created(self, item: ContentItem) -> ProcessingResult | None:
        # the node goes in first so mirrored edges have both endpoints
        await self.manager.add_content(item)
        return await self.coordinator.on_content_created(item)

    async def on_content_updated(self, item: ContentItem) -> ProcessingResult | None:
        await self.manager.update_content(item)
        return await self.coordinator.on_content_updated(item)

    async def on_content_deleted(self, content_id: str) -> int:
        removed = await self.coordinator.on_content_deleted(content_id)
        self.manager.remove_content(content_id)
        return removed

    # --- whole-store operations ---

    async def rebuild(self) -> dict[str, Any]:
        relationships = await self.coordinator.rebuild_all_relationships()
        result = await self.manager.rebuild_graph()
        logger.info(
            "Rebuilt %d relationships; graph has %d nodes and %d edges",
            relationships,
            result.nodes_added,
            result.edges_added,
        )
        return {
            "relationships": relationships,
            "nodes": result.nodes_added,
            "edges": result.edges_added,
            "clusters": result.clusters_created,
        }

    def related(self, content_id: str, max_results: int = 10, **kwargs: Any) -> list[RelatedNode]:
        return self.manager.graph.find_related_scored(content_id, max_results, **kwargs)
