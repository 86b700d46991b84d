"""Knowledge graph over saved content: nodes, edges, clusters, layout and snapshots."""

from .graph import DEFAULT_TRAVERSAL_TYPES, KnowledgeGraph
from .manager import GraphManager, GraphManagerOptions, GraphUpdateResult, ManagerStats
from .models import (
    ContentCluster,
    EdgeFilters,
    GraphEdge,
    GraphLayout,
    GraphNode,
    GraphQueryOptions,
    GraphQueryResult,
    GraphStats,
    NodeFilters,
    RelatedNode,
)

__all__ = [
    "DEFAULT_TRAVERSAL_TYPES",
    "ContentCluster",
    "EdgeFilters",
    "GraphEdge",
    "GraphLayout",
    "GraphManager",
    "GraphManagerOptions",
    "GraphNode",
    "GraphQueryOptions",
    "GraphQueryResult",
    "GraphStats",
    "GraphUpdateResult",
    "KnowledgeGraph",
    "ManagerStats",
    "NodeFilters",
    "RelatedNode",
]
