"""Shared test fixtures for the MindScribe test suite.

Provides content factories, in-memory stores seeded with a small corpus,
and a deterministic knowledge graph.
"""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest

from mindscribe.knowledge_graph import KnowledgeGraph
from mindscribe.models import ContentItem, Relationship, RelationshipType
from mindscribe.stores import InMemoryContentStore, InMemoryRelationshipStore, InMemorySnapshotSink

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def make_item(
    content_id: str,
    concepts: list[str] | None = None,
    tags: list[str] | None = None,
    category: str | None = None,
    importance: float = 0.5,
    access_count: int = 0,
    age_days: int = 0,
) -> ContentItem:
    return ContentItem(
        id=content_id,
        title=f"Title of {content_id}",
        category=category,
        concepts=concepts or [],
        tags=tags or [],
        importance=importance,
        access_count=access_count,
        created_at=BASE_TIME - timedelta(days=age_days),
    )


def make_rel(
    source: str,
    target: str,
    strength: float = 0.8,
    rel_type: RelationshipType = RelationshipType.RELATED,
    confidence: float = 0.7,
) -> Relationship:
    return Relationship(source_id=source, target_id=target, type=rel_type, strength=strength, confidence=confidence)


class CountingContentStore(InMemoryContentStore):
    """In-memory content store that records every read."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.reads: list[str] = []

    async def read(self, content_id: str):
        self.reads.append(content_id)
        return await super().read(content_id)


@pytest.fixture
def corpus() -> list[ContentItem]:
    """Five items: two javascript, two python, one unrelated.

    Pairwise strengths under the default scorer:
      js-1/js-2 0.54, js-1/py-1 0.42, py-1/py-2 0.54; everything else < 0.3.
    """
    return [
        make_item("js-1", ["javascript", "programming"], ["frontend", "web"], "tutorial", age_days=4),
        make_item("js-2", ["javascript", "web-development"], ["frontend"], "tutorial", age_days=3),
        make_item("py-1", ["python", "programming"], ["backend"], "tutorial", age_days=2),
        make_item("py-2", ["python", "data-science"], ["backend", "data"], "tutorial", age_days=1),
        make_item("cook-1", ["cooking"], ["food"], "lifestyle", age_days=0),
    ]


@pytest.fixture
def content_store(corpus) -> CountingContentStore:
    return CountingContentStore(corpus)


@pytest.fixture
def relationship_store() -> InMemoryRelationshipStore:
    return InMemoryRelationshipStore()


@pytest.fixture
def snapshot_sink() -> InMemorySnapshotSink:
    return InMemorySnapshotSink()


@pytest.fixture
def graph() -> KnowledgeGraph:
    return KnowledgeGraph(rng=random.Random(42))
