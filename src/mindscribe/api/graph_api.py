from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..integration import MindScribeService
from ..knowledge_graph.models import EdgeFilters, GraphQueryOptions, NodeFilters
from ..models import ContentItem, RelationshipType
from ..relationships.coordinator import RelationshipQuery
from ..settings import MindScribeSettings, settings
from ..stores.base import StoreError
from .auth import api_key_guard


class ContentIn(BaseModel):
    id: str = Field(min_length=1)
    title: str = ""
    category: str | None = None
    concepts: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    access_count: int = Field(default=0, ge=0)
    last_accessed: datetime | None = None
    created_at: datetime | None = None

    def to_item(self) -> ContentItem:
        return ContentItem.from_dict(self.model_dump())


class ContentEventIn(BaseModel):
    action: Literal["created", "updated"]
    item: ContentIn


class GraphQueryIn(BaseModel):
    categories: list[str] | None = None
    concepts: list[str] | None = None
    tags: list[str] | None = None
    min_importance: float | None = None
    min_access_count: int | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    types: list[RelationshipType] | None = None
    min_weight: float | None = None
    min_confidence: float | None = None

    limit: int | None = Field(default=None, ge=0)
    sort_by: Literal["importance", "access_count", "created_at", "weight"] | None = None
    sort_direction: Literal["asc", "desc"] = "asc"

    def to_options(self) -> GraphQueryOptions:
        return GraphQueryOptions(
            node_filters=NodeFilters(
                categories=self.categories,
                concepts=self.concepts,
                tags=self.tags,
                min_importance=self.min_importance,
                min_access_count=self.min_access_count,
                created_after=self.created_after,
                created_before=self.created_before,
            ),
            edge_filters=EdgeFilters(
                types=self.types,
                min_weight=self.min_weight,
                min_confidence=self.min_confidence,
            ),
            limit=self.limit,
            sort_by=self.sort_by,
            sort_direction=self.sort_direction,
        )


class RelationshipQueryIn(BaseModel):
    source_id: str | None = None
    target_id: str | None = None
    type: RelationshipType | None = None
    min_strength: float | None = None
    min_confidence: float | None = None
    limit: int | None = Field(default=None, ge=1)


class LayoutIn(BaseModel):
    iterations: int = Field(default=100, ge=0, le=5000)


def build_graph_router(service: MindScribeService, s: MindScribeSettings | None = None) -> APIRouter:
    r = APIRouter(prefix="/v1", tags=["graph"], dependencies=[Depends(api_key_guard(s or settings))])
    manager = service.manager
    coordinator = service.coordinator

    # --- content events ---

    @r.post("/content/events")
    async def content_event(payload: ContentEventIn):
        item = payload.item.to_item()
        if payload.action == "created":
            result = await service.on_content_created(item)
        else:
            result = await service.on_content_updated(item)
        return {"ok": True, "scheduled": result is None, "result": asdict(result) if result else None}

    @r.delete("/content/{content_id}")
    async def content_deleted(content_id: str):
        removed = await service.on_content_deleted(content_id)
        return {"ok": True, "relationships_removed": removed}

    # --- graph ---

    @r.get("/graph/stats")
    async def graph_stats():
        return manager.get_graph_stats().to_dict()

    @r.get("/graph/manager")
    async def manager_stats():
        return manager.get_manager_stats().to_dict()

    @r.get("/graph/related/{content_id}")
    async def related(
        content_id: str,
        max_results: int = 10,
        max_depth: int = 2,
        min_weight: float = 0.3,
    ):
        hits = service.related(content_id, max_results, max_depth=max_depth, min_weight=min_weight)
        return {
            "content_id": content_id,
            "count": len(hits),
            "related": [{"node": h.node.to_dict(), "distance": h.distance, "weight": h.weight} for h in hits],
        }

    @r.post("/graph/query")
    async def query_graph(payload: GraphQueryIn):
        return manager.query_graph(payload.to_options()).to_dict()

    @r.get("/graph/clusters")
    async def clusters():
        return [c.to_dict() for c in manager.get_all_clusters()]

    @r.get("/graph/clusters/{content_id}")
    async def content_cluster(content_id: str):
        cluster = manager.get_content_cluster(content_id)
        if cluster is None:
            raise HTTPException(status_code=404, detail="no cluster for content")
        return cluster.to_dict()

    @r.post("/graph/layout")
    async def layout(payload: LayoutIn):
        manager.update_layout(payload.iterations)
        return {"ok": True, "iterations": payload.iterations}

    @r.get("/graph/export")
    async def export_graph():
        return manager.export_graph_data()

    @r.post("/graph/import")
    async def import_graph(blob: dict[str, Any]):
        if not manager.import_graph_data(blob):
            raise HTTPException(status_code=400, detail="invalid graph snapshot")
        return {"ok": True, "nodes": len(manager.graph)}

    @r.post("/graph/save")
    async def save_graph():
        return {"ok": await manager.force_save()}

    @r.post("/graph/rebuild")
    async def rebuild():
        try:
            counts = await service.rebuild()
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"ok": True, **counts}

    # --- relationships ---

    @r.post("/relationships/query")
    async def query_relationships(payload: RelationshipQueryIn):
        rows = await coordinator.query_relationships(RelationshipQuery(**payload.model_dump()))
        return {"count": len(rows), "relationships": [rel.to_dict() for rel in rows]}

    @r.get("/relationships/stats")
    async def relationship_stats():
        return asdict(await coordinator.get_relationship_stats())

    @r.get("/relationships/service")
    async def service_stats():
        return asdict(coordinator.get_service_stats())

    @r.post("/relationships/{content_id}/process")
    async def process(content_id: str):
        result = await coordinator.trigger_relationship_processing(content_id)
        if not result.success and not result.discarded:
            raise HTTPException(status_code=404, detail=result.error or "processing failed")
        return asdict(result)

    @r.post("/relationships/maintenance")
    async def maintenance():
        return {"ok": True, "removed": await coordinator.perform_maintenance()}

    return r
