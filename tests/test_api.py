"""Route-level tests for the graph and relationship HTTP API."""

from __future__ import annotations

import pytest
from conftest import make_item
from fastapi.testclient import TestClient

from mindscribe.api.app import create_app
from mindscribe.integration import MindScribeService
from mindscribe.knowledge_graph import GraphManagerOptions
from mindscribe.relationships import CoordinatorOptions
from mindscribe.settings import MindScribeSettings
from mindscribe.stores import InMemoryRelationshipStore, InMemorySnapshotSink


@pytest.fixture
def service(content_store) -> MindScribeService:
    return MindScribeService(
        content_store,
        InMemoryRelationshipStore(),
        InMemorySnapshotSink(),
        coordinator_options=CoordinatorOptions(processing_delay=0),
        manager_options=GraphManagerOptions(auto_save=False, initial_layout_iterations=10),
    )


@pytest.fixture
def client(service):
    with TestClient(create_app(service, MindScribeSettings(api_key=None))) as c:
        yield c


@pytest.fixture
def rebuilt(client):
    resp = client.post("/v1/graph/rebuild")
    assert resp.status_code == 200
    return resp.json()


class TestHealthAndAuth:
    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

    def test_api_key_enforced_when_configured(self, service) -> None:
        app = create_app(service, MindScribeSettings(api_key="secret"))

        with TestClient(app) as locked:
            assert locked.get("/v1/graph/stats").status_code == 401
            assert locked.get("/v1/graph/stats", headers={"X-API-Key": "wrong"}).status_code == 401
            assert locked.get("/v1/graph/stats", headers={"X-API-Key": "secret"}).status_code == 200
            assert locked.get("/health").status_code == 200

    def test_open_when_no_key_configured(self, client) -> None:
        assert client.get("/v1/graph/stats").status_code == 200


class TestGraphRoutes:
    def test_rebuild_reports_counts(self, rebuilt) -> None:
        assert rebuilt["ok"] is True
        assert rebuilt["relationships"] == 6
        assert rebuilt["nodes"] == 5
        assert rebuilt["edges"] == 6

    def test_related_orders_by_distance_then_weight(self, client, rebuilt) -> None:
        resp = client.get("/v1/graph/related/js-1", params={"max_depth": 2})
        body = resp.json()

        assert [r["node"]["content_id"] for r in body["related"]] == ["js-2", "py-1", "py-2"]
        assert [r["distance"] for r in body["related"]] == [1, 1, 2]

    def test_related_for_unknown_content_is_empty(self, client, rebuilt) -> None:
        assert client.get("/v1/graph/related/missing").json()["count"] == 0

    def test_query_filters_nodes_and_edges(self, client, rebuilt) -> None:
        resp = client.post("/v1/graph/query", json={"concepts": ["Python"], "sort_by": "created_at"})
        body = resp.json()

        assert resp.status_code == 200
        assert [n["content_id"] for n in body["nodes"]] == ["py-1", "py-2"]
        assert {e["relationship_id"] for e in body["edges"]} == {"py-1->py-2", "py-2->py-1"}

    def test_query_rejects_unknown_sort_key(self, client) -> None:
        assert client.post("/v1/graph/query", json={"sort_by": "colour"}).status_code == 422

    def test_clusters(self, client, rebuilt) -> None:
        clusters = client.get("/v1/graph/clusters").json()
        assert "cluster-javascript" in {c["id"] for c in clusters}

        assert client.get("/v1/graph/clusters/js-1").json()["id"] == "cluster-javascript"
        assert client.get("/v1/graph/clusters/cook-1").status_code == 404

    def test_layout_and_manager_stats(self, client, rebuilt) -> None:
        assert client.post("/v1/graph/layout", json={"iterations": 5}).json() == {"ok": True, "iterations": 5}
        stats = client.get("/v1/graph/manager").json()
        assert stats["last_layout_update"] is not None
        assert stats["graph_stats"]["total_nodes"] == 5

    def test_export_import_round_trip(self, client, rebuilt) -> None:
        blob = client.get("/v1/graph/export").json()
        assert blob["version"] == 1

        resp = client.post("/v1/graph/import", json=blob)
        assert resp.json() == {"ok": True, "nodes": 5}

    def test_import_rejects_malformed_snapshot(self, client) -> None:
        assert client.post("/v1/graph/import", json={"nodes": [{"id": "node-x"}]}).status_code == 400

    def test_save(self, client, service, rebuilt) -> None:
        assert client.post("/v1/graph/save").json() == {"ok": True}
        assert service.snapshot_sink.saves == 1


class TestContentEvents:
    def test_created_event_processes_inline(self, client, service, rebuilt) -> None:
        service.content_store.put(make_item("js-3", ["javascript", "web-development"], ["frontend"], "tutorial"))

        resp = client.post(
            "/v1/content/events",
            json={
                "action": "created",
                "item": {
                    "id": "js-3",
                    "category": "tutorial",
                    "concepts": ["javascript", "web-development"],
                    "tags": ["frontend"],
                },
            },
        )
        body = resp.json()

        assert body["scheduled"] is False
        assert body["result"]["success"] is True
        assert body["result"]["created"] >= 1
        related = client.get("/v1/graph/related/js-3", params={"max_depth": 1}).json()
        assert related["related"][0]["node"]["content_id"] == "js-2"

    def test_invalid_event_is_rejected(self, client) -> None:
        resp = client.post("/v1/content/events", json={"action": "archived", "item": {"id": "x"}})
        assert resp.status_code == 422

    def test_delete_cascades(self, client, service, rebuilt) -> None:
        resp = client.delete("/v1/content/js-1")

        assert resp.json() == {"ok": True, "relationships_removed": 4}
        assert service.graph.get_node_by_content_id("js-1") is None


class TestRelationshipRoutes:
    def test_query_by_source(self, client, rebuilt) -> None:
        body = client.post("/v1/relationships/query", json={"source_id": "js-1", "min_strength": 0.5}).json()
        assert [r["id"] for r in body["relationships"]] == ["js-1->js-2"]

    def test_stats(self, client, rebuilt) -> None:
        stats = client.get("/v1/relationships/stats").json()
        assert stats["total_relationships"] == 6
        assert set(stats["most_connected_content"]) == {"js-1", "js-2", "py-1", "py-2"}

    def test_process_unknown_content_is_404(self, client) -> None:
        assert client.post("/v1/relationships/missing/process").status_code == 404

    def test_process_and_service_stats(self, client, rebuilt) -> None:
        result = client.post("/v1/relationships/py-2/process").json()
        assert result["success"] is True

        stats = client.get("/v1/relationships/service").json()
        assert stats["total_processed"] == 1

    def test_maintenance_without_ttl_removes_nothing(self, client, rebuilt) -> None:
        assert client.post("/v1/relationships/maintenance").json() == {"ok": True, "removed": 0}
