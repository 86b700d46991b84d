"""Tests for the SQLite-backed store adapters."""

from __future__ import annotations

import pytest
from conftest import make_item, make_rel

from mindscribe.models import RelationshipType
from mindscribe.relationships import CoordinatorOptions, RelationshipCoordinator
from mindscribe.stores import open_sqlite_stores


@pytest.fixture
def stores(tmp_path, corpus):
    content, relationships, sink = open_sqlite_stores(str(tmp_path / "graph.db"))
    content.db.put_content(corpus)
    return content, relationships, sink


class TestSQLiteContentStore:
    @pytest.mark.asyncio
    async def test_read_round_trips_fields(self, stores) -> None:
        content, _, _ = stores
        res = await content.read("js-1")

        assert res.success
        assert res.data.concepts == ["javascript", "programming"]
        assert res.data.tags == ["frontend", "web"]
        assert res.data.category == "tutorial"
        assert res.data.created_at == make_item("x", age_days=4).created_at

    @pytest.mark.asyncio
    async def test_missing_item_is_a_failure(self, stores) -> None:
        content, _, _ = stores
        res = await content.read("nope")
        assert not res.success
        assert res.error == "Content not found"

    @pytest.mark.asyncio
    async def test_list_keeps_insertion_order_and_filters(self, stores) -> None:
        content, _, _ = stores
        everything = await content.list()
        lifestyle = await content.list({"category": "lifestyle"})

        assert [i.id for i in everything.data] == ["js-1", "js-2", "py-1", "py-2", "cook-1"]
        assert [i.id for i in lifestyle.data] == ["cook-1"]


class TestSQLiteRelationshipStore:
    @pytest.mark.asyncio
    async def test_create_rejects_duplicates(self, stores) -> None:
        _, relationships, _ = stores
        assert (await relationships.create(make_rel("a", "b"))).success

        again = await relationships.create(make_rel("a", "b"))

        assert not again.success
        assert again.error.startswith("Storage error")

    @pytest.mark.asyncio
    async def test_indexes_by_source_target_and_type(self, stores) -> None:
        _, relationships, _ = stores
        await relationships.bulk_create(
            [
                make_rel("a", "b"),
                make_rel("b", "a"),
                make_rel("a", "c", rel_type=RelationshipType.BUILDS_ON),
            ]
        )

        assert [r.id for r in (await relationships.list_by_source("a")).data] == ["a->b", "a->c"]
        assert [r.id for r in (await relationships.list_by_target("a")).data] == ["b->a"]
        by_type = await relationships.list_by_type(RelationshipType.BUILDS_ON)
        assert [r.id for r in by_type.data] == ["a->c"]
        assert by_type.data[0].type is RelationshipType.BUILDS_ON

    @pytest.mark.asyncio
    async def test_bulk_create_upserts(self, stores) -> None:
        _, relationships, _ = stores
        await relationships.bulk_create([make_rel("a", "b", 0.4)])
        await relationships.bulk_create([make_rel("a", "b", 0.9)])

        rows = (await relationships.list()).data
        assert len(rows) == 1
        assert rows[0].strength == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_update_merges_and_stamps(self, stores) -> None:
        _, relationships, _ = stores
        original = make_rel("a", "b", 0.4)
        await relationships.create(original)

        res = await relationships.update("a->b", {"strength": 0.6, "id": "ignored"})

        assert res.success
        assert res.data.id == "a->b"
        assert res.data.strength == pytest.approx(0.6)
        assert res.data.last_updated >= original.created_at
        assert (await relationships.read("a->b")).data.strength == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_update_and_read_missing(self, stores) -> None:
        _, relationships, _ = stores
        assert not (await relationships.update("x->y", {"strength": 1.0})).success
        assert (await relationships.read("x->y")).error == "Relationship not found"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, stores) -> None:
        _, relationships, _ = stores
        await relationships.bulk_create([make_rel("a", "b"), make_rel("b", "c")])

        await relationships.delete("a->b")
        assert [r.id for r in (await relationships.list()).data] == ["b->c"]

        await relationships.clear()
        assert (await relationships.list()).data == []


class TestSQLiteSnapshotSink:
    @pytest.mark.asyncio
    async def test_empty_then_overwrite(self, stores) -> None:
        _, _, sink = stores
        assert (await sink.load()).data is None

        await sink.save({"nodes": [], "version": 1})
        await sink.save({"nodes": [{"id": "node-a"}], "version": 2})

        loaded = (await sink.load()).data
        assert loaded == {"nodes": [{"id": "node-a"}], "version": 2}


class TestCoordinatorOverSQLite:
    @pytest.mark.asyncio
    async def test_processing_persists_both_directions(self, stores) -> None:
        content, relationships, _ = stores
        coordinator = RelationshipCoordinator(content, relationships, options=CoordinatorOptions(processing_delay=0))

        result = await coordinator.process_content_relationships("js-1")

        assert result.success
        ids = {r.id for r in (await relationships.list()).data}
        assert {"js-1->js-2", "js-2->js-1", "js-1->py-1", "py-1->js-1"} <= ids
