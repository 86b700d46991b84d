"""Concept-based clustering helpers.

Nodes are grouped by their dominant concept. Every node's concepts are
de-duplicated, so "most frequent" is usually a tie; ties go to the concept
that is more common across the whole graph, then to the lexicographically
smallest one. That keeps grouping independent of insertion order.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable

from .models import GraphNode


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def string_hash(value: str) -> int:
    """32-bit rolling string hash (``h = c + (h << 5) - h`` over UTF-16 code units)."""
    data = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = unit + (_to_int32(_to_int32(h) << 5) - h)
    return h


def cluster_color(concept: str) -> str:
    hue = abs(string_hash(concept)) % 360
    return f"hsl({hue}, 70%, 60%)"


def cluster_name(concept: str) -> str:
    return f"{concept[:1].upper()}{concept[1:]} Cluster"


def concept_frequency(nodes: Iterable[GraphNode]) -> Counter[str]:
    counts: Counter[str] = Counter()
    for node in nodes:
        counts.update(node.concepts)
    return counts


def dominant_concept(node: GraphNode, global_counts: Counter[str]) -> str | None:
    if not node.concepts:
        return None
    local = Counter(node.concepts)
    return min(local, key=lambda c: (-local[c], -global_counts[c], c))


def centroid(nodes: list[GraphNode]) -> tuple[float, float]:
    if not nodes:
        return 0.0, 0.0
    x = sum(n.position[0] for n in nodes) / len(nodes)
    y = sum(n.position[1] for n in nodes) / len(nodes)
    return x, y


def radius(nodes: list[GraphNode], center: tuple[float, float], padding: float = 50.0) -> float:
    furthest = max((math.dist(n.position, center) for n in nodes), default=0.0)
    return furthest + padding


def majority_category(nodes: list[GraphNode]) -> str | None:
    counts = Counter(n.category for n in nodes if n.category)
    if not counts:
        return None
    return min(counts, key=lambda c: (-counts[c], c))
