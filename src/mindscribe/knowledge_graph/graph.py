"""
In-memory knowledge graph over saved content.

Records are kept in flat id-keyed maps (nodes, edges, clusters) plus two
indices: content id -> node id, and node id -> incident edge ids. Records
never hold references to each other; every mutation keeps the indices in
step, and import rebuilds them from scratch.

All operations are synchronous and run on the event loop thread without
locking.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from collections.abc import Iterable
from operator import attrgetter
from typing import Any

import numpy as np

from ..models import ContentItem, Relationship, RelationshipType, utcnow
from .clustering import (
    centroid,
    cluster_color,
    cluster_name,
    concept_frequency,
    dominant_concept,
    majority_category,
    radius,
)
from .layout import force_directed, random_position
from .models import (
    ContentCluster,
    GraphEdge,
    GraphLayout,
    GraphNode,
    GraphQueryOptions,
    GraphQueryResult,
    GraphStats,
    RelatedNode,
    category_color,
    edge_id_for,
    node_id_for,
    node_size,
)

logger = logging.getLogger(__name__)

DEFAULT_TRAVERSAL_TYPES = (
    RelationshipType.SIMILAR,
    RelationshipType.BUILDS_ON,
    RelationshipType.RELATED,
    RelationshipType.REFERENCES,
)
NODE_SORT_KEYS = ("importance", "access_count", "created_at")


class KnowledgeGraph:
    def __init__(self, layout: GraphLayout | None = None, rng: random.Random | None = None):
        self._layout = layout or GraphLayout()
        self.rng = rng or random.Random()

        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, GraphEdge] = {}
        self._clusters: dict[str, ContentCluster] = {}
        self._content_to_node: dict[str, str] = {}
        self._node_edges: dict[str, set[str]] = {}

    # --- mutation ---

    def add_content(self, item: ContentItem) -> GraphNode:
        """Create or replace the node for ``item``.

        A replaced node keeps its id, its position and its incident edges,
        including a node whose id came from an imported snapshot.
        """
        node_id = self._content_to_node.get(item.id) or node_id_for(item.id)
        existing = self._nodes.get(node_id)
        position = existing.position if existing else random_position(self.rng, self._layout)

        node = GraphNode(
            id=node_id,
            content_id=item.id,
            title=item.title,
            category=item.category,
            concepts=list(item.concepts),
            tags=list(item.tags),
            position=position,
            size=node_size(item.importance, item.access_count),
            color=category_color(item.category),
            importance=item.importance,
            access_count=item.access_count,
            last_accessed=item.last_accessed,
            created_at=item.created_at,
        )
        self._nodes[node_id] = node
        self._content_to_node[item.id] = node_id
        self._node_edges.setdefault(node_id, set())
        return node

    def add_relationship(self, relationship: Relationship) -> GraphEdge | None:
        source = self._content_to_node.get(relationship.source_id)
        target = self._content_to_node.get(relationship.target_id)
        if source is None or target is None:
            logger.warning(
                "Cannot add relationship %s: missing node for %s",
                relationship.id,
                relationship.source_id if source is None else relationship.target_id,
            )
            return None
        if source == target:
            logger.warning("Ignoring self-relationship %s", relationship.id)
            return None

        edge_id = edge_id_for(relationship.id)
        if edge_id in self._edges:
            self._drop_edge(edge_id)

        edge = GraphEdge(
            id=edge_id,
            source_id=source,
            target_id=target,
            relationship_id=relationship.id,
            type=relationship.type,
            weight=relationship.strength,
            confidence=relationship.confidence,
            created_at=relationship.created_at,
            last_updated=relationship.last_updated,
        )
        self._edges[edge_id] = edge
        self._node_edges[source].add(edge_id)
        self._node_edges[target].add(edge_id)
        return edge

    def remove_content(self, content_id: str) -> bool:
        node_id = self._content_to_node.pop(content_id, None)
        if node_id is None:
            return False

        for edge_id in list(self._node_edges.get(node_id, ())):
            self._drop_edge(edge_id)
        self._node_edges.pop(node_id, None)
        self._nodes.pop(node_id, None)

        # drop the node from cluster membership; clusters left with one member go away
        for cluster_id, cluster in list(self._clusters.items()):
            if node_id in cluster.node_ids:
                cluster.node_ids = [n for n in cluster.node_ids if n != node_id]
                if len(cluster.node_ids) < 2:
                    del self._clusters[cluster_id]
        return True

    def remove_relationship(self, relationship_id: str) -> bool:
        edge_id = edge_id_for(relationship_id)
        if edge_id not in self._edges:
            return False
        self._drop_edge(edge_id)
        return True

    def _drop_edge(self, edge_id: str) -> None:
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            return
        for node_id in (edge.source_id, edge.target_id):
            incident = self._node_edges.get(node_id)
            if incident is not None:
                incident.discard(edge_id)

    def clear_edges(self) -> None:
        self._edges.clear()
        for incident in self._node_edges.values():
            incident.clear()

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._clusters.clear()
        self._content_to_node.clear()
        self._node_edges.clear()

    # --- accessors ---

    @property
    def layout(self) -> GraphLayout:
        return self._layout

    def set_layout(self, layout: GraphLayout) -> None:
        self._layout = layout

    def get_node(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def get_node_by_content_id(self, content_id: str) -> GraphNode | None:
        node_id = self._content_to_node.get(content_id)
        return self._nodes.get(node_id) if node_id else None

    def get_edge(self, edge_id: str) -> GraphEdge | None:
        return self._edges.get(edge_id)

    def all_nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    def all_edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def all_clusters(self) -> list[ContentCluster]:
        return list(self._clusters.values())

    def get_cluster(self, content_id: str) -> ContentCluster | None:
        node_id = self._content_to_node.get(content_id)
        if node_id is None:
            return None
        for cluster in self._clusters.values():
            if node_id in cluster.node_ids:
                return cluster
        return None

    def get_cluster_by_id(self, cluster_id: str) -> ContentCluster | None:
        return self._clusters.get(cluster_id)

    def incident_edges(self, node_id: str) -> list[GraphEdge]:
        return [self._edges[e] for e in sorted(self._node_edges.get(node_id, ()))]

    def degree(self, node_id: str) -> int:
        return len(self._node_edges.get(node_id, ()))

    def __len__(self) -> int:
        return len(self._nodes)

    # --- traversal ---

    def find_related_scored(
        self,
        content_id: str,
        max_results: int = 10,
        max_depth: int = 2,
        min_weight: float = 0.3,
        include_types: Iterable[RelationshipType | str] | None = DEFAULT_TRAVERSAL_TYPES,
        exclude_types: Iterable[RelationshipType | str] = (),
    ) -> list[RelatedNode]:
        """Breadth-first neighbourhood of ``content_id``.

        Each reached node is reported once, at its BFS distance, with the
        heaviest qualifying edge touching it. Results are ordered by distance
        then weight (descending), ties in discovery order.
        """
        start = self._content_to_node.get(content_id)
        if start is None:
            return []

        include = {RelationshipType(t) for t in include_types} if include_types else None
        exclude = {RelationshipType(t) for t in exclude_types}

        def qualifies(edge: GraphEdge) -> bool:
            if edge.weight < min_weight:
                return False
            if include is not None and edge.type not in include:
                return False
            return edge.type not in exclude

        visited = {start}
        found: list[tuple[str, int]] = []
        frontier = [start]
        for depth in range(1, max_depth + 1):
            next_frontier: list[str] = []
            for node_id in frontier:
                for edge in self.incident_edges(node_id):
                    if not qualifies(edge):
                        continue
                    other = edge.target_id if edge.source_id == node_id else edge.source_id
                    if other in visited:
                        continue
                    visited.add(other)
                    found.append((other, depth))
                    next_frontier.append(other)
            if not next_frontier:
                break
            frontier = next_frontier

        related = [
            RelatedNode(
                node=self._nodes[node_id],
                distance=depth,
                weight=max((e.weight for e in self.incident_edges(node_id) if qualifies(e)), default=0.0),
            )
            for node_id, depth in found
        ]
        related.sort(key=lambda r: (r.distance, -r.weight))
        return related[: max(0, max_results)]

    def find_related(self, content_id: str, max_results: int = 10, **kwargs: Any) -> list[GraphNode]:
        return [r.node for r in self.find_related_scored(content_id, max_results, **kwargs)]

    # --- clustering ---

    def create_clusters(self) -> list[ContentCluster]:
        self._clusters.clear()
        nodes = list(self._nodes.values())
        global_counts = concept_frequency(nodes)

        groups: dict[str, list[GraphNode]] = {}
        for node in nodes:
            concept = dominant_concept(node, global_counts)
            if concept is not None:
                groups.setdefault(concept, []).append(node)

        now = utcnow()
        clusters: list[ContentCluster] = []
        for concept in sorted(groups):
            members = sorted(groups[concept], key=attrgetter("id"))
            if len(members) < 2:
                continue
            center = centroid(members)
            cluster = ContentCluster(
                id=f"cluster-{concept}",
                name=cluster_name(concept),
                description=f"Content related to {concept}",
                node_ids=[n.id for n in members],
                centroid=center,
                radius=radius(members, center),
                color=cluster_color(concept),
                category=majority_category(members),
                concepts=[concept],
                created_at=now,
                last_updated=now,
            )
            self._clusters[cluster.id] = cluster
            clusters.append(cluster)
        return clusters

    # --- query ---

    def query_graph(self, options: GraphQueryOptions | None = None) -> GraphQueryResult:
        options = options or GraphQueryOptions()
        nodes = list(self._nodes.values())

        nf = options.node_filters
        if nf is not None:
            if nf.categories:
                wanted = {c.lower() for c in nf.categories}
                nodes = [n for n in nodes if n.category and n.category.lower() in wanted]
            if nf.concepts:
                wanted = {c.lower() for c in nf.concepts}
                nodes = [n for n in nodes if wanted & {c.lower() for c in n.concepts}]
            if nf.tags:
                wanted = {t.lower() for t in nf.tags}
                nodes = [n for n in nodes if wanted & {t.lower() for t in n.tags}]
            if nf.min_importance is not None:
                nodes = [n for n in nodes if n.importance >= nf.min_importance]
            if nf.min_access_count is not None:
                nodes = [n for n in nodes if n.access_count >= nf.min_access_count]
            if nf.created_after is not None:
                nodes = [n for n in nodes if n.created_at >= nf.created_after]
            if nf.created_before is not None:
                nodes = [n for n in nodes if n.created_at <= nf.created_before]

        edges = self._edges_within(self._edges.values(), {n.id for n in nodes})

        ef = options.edge_filters
        if ef is not None:
            if ef.types:
                types = {RelationshipType(t) for t in ef.types}
                edges = [e for e in edges if e.type in types]
            if ef.min_weight is not None:
                edges = [e for e in edges if e.weight >= ef.min_weight]
            if ef.min_confidence is not None:
                edges = [e for e in edges if e.confidence >= ef.min_confidence]

        if options.sort_by:
            descending = options.sort_direction == "desc"
            if options.sort_by in NODE_SORT_KEYS:
                nodes.sort(key=attrgetter(options.sort_by), reverse=descending)
            elif options.sort_by == "weight":
                edges.sort(key=attrgetter("weight"), reverse=descending)
            else:
                logger.warning("Ignoring unknown sort key: %s", options.sort_by)

        if options.limit is not None:
            nodes = nodes[: max(0, options.limit)]
            edges = self._edges_within(edges, {n.id for n in nodes})

        return GraphQueryResult(nodes=nodes, edges=edges)

    @staticmethod
    def _edges_within(edges: Iterable[GraphEdge], node_ids: set[str]) -> list[GraphEdge]:
        return [e for e in edges if e.source_id in node_ids and e.target_id in node_ids]

    # --- layout ---

    def update_layout(self, iterations: int = 100) -> None:
        if not self._nodes:
            return
        node_ids = list(self._nodes)
        index = {node_id: i for i, node_id in enumerate(node_ids)}
        edges = list(self._edges.values())

        positions = np.array([self._nodes[n].position for n in node_ids], dtype=float)
        edge_index = np.array([(index[e.source_id], index[e.target_id]) for e in edges], dtype=int).reshape(-1, 2)
        weights = np.array([e.weight for e in edges], dtype=float)

        updated = force_directed(positions, edge_index, weights, self._layout, iterations)
        for node_id, (x, y) in zip(node_ids, updated):
            self._nodes[node_id].position = (float(x), float(y))

    # --- snapshot ---

    def export_graph(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "edges": [e.to_dict() for e in self._edges.values()],
            "clusters": [c.to_dict() for c in self._clusters.values()],
            "layout": self._layout.to_dict(),
        }

    def import_graph(self, blob: dict[str, Any]) -> None:
        """Replace the whole graph with ``blob``; both indices are rebuilt from it.

        Parsing happens before any state is touched, so a malformed blob
        raises and leaves the current graph as it was.
        """
        layout = GraphLayout.from_dict(blob.get("layout"))
        nodes = [GraphNode.from_dict(d) for d in blob.get("nodes") or []]
        edges = [GraphEdge.from_dict(d) for d in blob.get("edges") or []]
        clusters = [ContentCluster.from_dict(d) for d in blob.get("clusters") or []]

        self.clear()
        self._layout = layout
        for node in nodes:
            if node.content_id in self._content_to_node:
                logger.warning("Skipping duplicate node for content %s", node.content_id)
                continue
            self._nodes[node.id] = node
            self._content_to_node[node.content_id] = node.id
            self._node_edges[node.id] = set()

        for edge in edges:
            if edge.source_id not in self._nodes or edge.target_id not in self._nodes:
                logger.warning("Skipping edge %s with missing endpoint", edge.id)
                continue
            self._edges[edge.id] = edge
            self._node_edges[edge.source_id].add(edge.id)
            self._node_edges[edge.target_id].add(edge.id)

        for cluster in clusters:
            self._clusters[cluster.id] = cluster

    # --- statistics ---

    def get_stats(self) -> GraphStats:
        nodes = list(self._nodes.values())
        degrees = {n.id: self.degree(n.id) for n in nodes}
        by_degree = sorted(nodes, key=lambda n: (-degrees[n.id], n.id))[:10]
        by_weight = sorted(self._edges.values(), key=lambda e: (-e.weight, e.id))[:10]

        return GraphStats(
            total_nodes=len(nodes),
            total_edges=len(self._edges),
            total_clusters=len(self._clusters),
            average_degree=sum(degrees.values()) / len(nodes) if nodes else 0.0,
            most_connected_nodes=[
                {"node_id": n.id, "content_id": n.content_id, "title": n.title, "degree": degrees[n.id]}
                for n in by_degree
            ],
            strongest_connections=[
                {
                    "edge_id": e.id,
                    "source_id": e.source_id,
                    "target_id": e.target_id,
                    "type": e.type.value,
                    "weight": e.weight,
                }
                for e in by_weight
            ],
            cluster_sizes={c.id: len(c.node_ids) for c in self._clusters.values()},
            category_distribution=dict(Counter(n.category or "uncategorized" for n in nodes)),
            concept_frequency=dict(concept_frequency(nodes)),
        )
