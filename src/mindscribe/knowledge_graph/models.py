from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import RelationshipType, format_datetime, parse_datetime, utcnow

CATEGORY_COLORS: dict[str, str] = {
    "tutorial": "#4CAF50",
    "article": "#2196F3",
    "documentation": "#FF9800",
    "video": "#E91E63",
    "research": "#9C27B0",
    "news": "#F44336",
    "reference": "#607D8B",
    "tool": "#795548",
    "design": "#E91E63",
    "lifestyle": "#8BC34A",
}
DEFAULT_COLOR = "#9E9E9E"


def category_color(category: str | None) -> str:
    if not category:
        return DEFAULT_COLOR
    return CATEGORY_COLORS.get(category.lower(), DEFAULT_COLOR)


def node_size(importance: float, access_count: int) -> float:
    # 10 base, up to 20 for importance, up to 10 for access frequency
    return 10 + importance * 20 + min(access_count / 10, 1) * 10


def node_id_for(content_id: str) -> str:
    return f"node-{content_id}"


def edge_id_for(relationship_id: str) -> str:
    return f"edge-{relationship_id}"


def _position(value: Any) -> tuple[float, float]:
    if isinstance(value, dict):
        return float(value.get("x", 0.0)), float(value.get("y", 0.0))
    x, y = value
    return float(x), float(y)


@dataclass
class GraphLayout:
    """Force-directed layout parameters and drawing bounds."""

    algorithm: str = "force-directed"
    repulsion: float = 100.0
    attraction: float = 0.1
    damping: float = 0.9
    iterations: int = 1000
    width: float = 1000.0
    height: float = 1000.0
    center: tuple[float, float] = (500.0, 500.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "parameters": {
                "repulsion": self.repulsion,
                "attraction": self.attraction,
                "damping": self.damping,
                "iterations": self.iterations,
            },
            "bounds": {"width": self.width, "height": self.height},
            "center": {"x": self.center[0], "y": self.center[1]},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GraphLayout":
        if not data:
            return cls()
        params = data.get("parameters") or {}
        bounds = data.get("bounds") or {}
        default = cls()
        return cls(
            algorithm=data.get("algorithm", default.algorithm),
            repulsion=float(params.get("repulsion", default.repulsion)),
            attraction=float(params.get("attraction", default.attraction)),
            damping=float(params.get("damping", default.damping)),
            iterations=int(params.get("iterations", default.iterations)),
            width=float(bounds.get("width", default.width)),
            height=float(bounds.get("height", default.height)),
            center=_position(data.get("center") or default.center),
        )


@dataclass
class GraphNode:
    id: str
    content_id: str
    title: str = ""
    category: str | None = None
    concepts: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    position: tuple[float, float] = (0.0, 0.0)
    size: float = 10.0
    color: str = DEFAULT_COLOR
    importance: float = 0.5
    access_count: int = 0
    last_accessed: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content_id": self.content_id,
            "title": self.title,
            "category": self.category,
            "concepts": list(self.concepts),
            "tags": list(self.tags),
            "position": {"x": self.position[0], "y": self.position[1]},
            "size": self.size,
            "color": self.color,
            "importance": self.importance,
            "access_count": self.access_count,
            "last_accessed": format_datetime(self.last_accessed),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphNode":
        return cls(
            id=data["id"],
            content_id=data["content_id"],
            title=data.get("title") or "",
            category=data.get("category"),
            concepts=list(data.get("concepts") or []),
            tags=list(data.get("tags") or []),
            position=_position(data.get("position") or (0.0, 0.0)),
            size=float(data.get("size", 10.0)),
            color=data.get("color") or DEFAULT_COLOR,
            importance=float(data.get("importance", 0.5)),
            access_count=int(data.get("access_count", 0)),
            last_accessed=parse_datetime(data.get("last_accessed")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class GraphEdge:
    id: str
    source_id: str  # node id
    target_id: str  # node id
    relationship_id: str
    type: RelationshipType = RelationshipType.RELATED
    weight: float = 0.0
    confidence: float = 0.0
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relationship_id": self.relationship_id,
            "type": self.type.value,
            "weight": self.weight,
            "confidence": self.confidence,
            "created_at": format_datetime(self.created_at),
            "last_updated": format_datetime(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphEdge":
        return cls(
            id=data["id"],
            source_id=data["source_id"],
            target_id=data["target_id"],
            relationship_id=data.get("relationship_id") or "",
            type=RelationshipType(data.get("type") or RelationshipType.RELATED.value),
            weight=float(data.get("weight", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            last_updated=parse_datetime(data.get("last_updated")),
        )


@dataclass
class ContentCluster:
    """A group of nodes sharing a dominant concept. Recomputed wholesale, never patched."""

    id: str
    name: str
    description: str
    node_ids: list[str]
    centroid: tuple[float, float]
    radius: float
    color: str
    category: str | None = None
    concepts: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "node_ids": list(self.node_ids),
            "centroid": {"x": self.centroid[0], "y": self.centroid[1]},
            "radius": self.radius,
            "color": self.color,
            "category": self.category,
            "concepts": list(self.concepts),
            "created_at": format_datetime(self.created_at),
            "last_updated": format_datetime(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentCluster":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            description=data.get("description") or "",
            node_ids=list(data.get("node_ids") or []),
            centroid=_position(data.get("centroid") or (0.0, 0.0)),
            radius=float(data.get("radius", 0.0)),
            color=data.get("color") or DEFAULT_COLOR,
            category=data.get("category"),
            concepts=list(data.get("concepts") or []),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            last_updated=parse_datetime(data.get("last_updated")) or utcnow(),
        )


@dataclass
class NodeFilters:
    categories: list[str] | None = None
    concepts: list[str] | None = None
    tags: list[str] | None = None
    min_importance: float | None = None
    min_access_count: int | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None


@dataclass
class EdgeFilters:
    types: list[RelationshipType] | None = None
    min_weight: float | None = None
    min_confidence: float | None = None


@dataclass
class GraphQueryOptions:
    node_filters: NodeFilters | None = None
    edge_filters: EdgeFilters | None = None
    limit: int | None = None
    sort_by: str | None = None  # importance | access_count | created_at | weight
    sort_direction: str = "asc"


@dataclass
class GraphQueryResult:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"nodes": [n.to_dict() for n in self.nodes], "edges": [e.to_dict() for e in self.edges]}


@dataclass(slots=True)
class RelatedNode:
    """One traversal hit: the node, its BFS distance and its best qualifying edge weight."""

    node: GraphNode
    distance: int
    weight: float


@dataclass
class GraphStats:
    total_nodes: int = 0
    total_edges: int = 0
    total_clusters: int = 0
    average_degree: float = 0.0
    most_connected_nodes: list[dict[str, Any]] = field(default_factory=list)
    strongest_connections: list[dict[str, Any]] = field(default_factory=list)
    cluster_sizes: dict[str, int] = field(default_factory=dict)
    category_distribution: dict[str, int] = field(default_factory=dict)
    concept_frequency: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "total_clusters": self.total_clusters,
            "average_degree": self.average_degree,
            "most_connected_nodes": list(self.most_connected_nodes),
            "strongest_connections": list(self.strongest_connections),
            "cluster_sizes": dict(self.cluster_sizes),
            "category_distribution": dict(self.category_distribution),
            "concept_frequency": dict(self.concept_frequency),
        }
