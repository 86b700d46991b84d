"""Tests for the mindscribe command line interface."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from mindscribe.cli.main import cli


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "cli.db")


@pytest.fixture
def ingested(tmp_path, db_path, corpus) -> CliRunner:
    source = tmp_path / "items.json"
    raw = [item.to_dict() for item in corpus]
    raw.append({"title": "no id here"})
    source.write_text(json.dumps({"items": raw}), encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(cli, ["--db", db_path, "ingest", str(source)])
    assert result.exit_code == 0, result.output
    assert "Stored 5 content items" in result.output
    assert "Skipping item without id" in result.output
    return runner


class TestIngest:
    def test_ingest_rebuilds_relationships(self, ingested, db_path) -> None:
        result = ingested.invoke(cli, ["--db", db_path, "stats"])

        assert result.exit_code == 0, result.output
        assert "Nodes" in result.output
        assert "Relationships" in result.output

    def test_no_rebuild_leaves_store_without_relationships(self, tmp_path, db_path, corpus) -> None:
        source = tmp_path / "items.json"
        source.write_text(json.dumps([item.to_dict() for item in corpus]), encoding="utf-8")
        runner = CliRunner()

        result = runner.invoke(cli, ["--db", db_path, "ingest", "--no-rebuild", str(source)])

        assert result.exit_code == 0, result.output
        assert "Rebuild" not in result.output

    def test_missing_file_is_a_usage_error(self, db_path) -> None:
        result = CliRunner().invoke(cli, ["--db", db_path, "ingest", "/does/not/exist.json"])
        assert result.exit_code == 2


class TestInspection:
    def test_related(self, ingested, db_path) -> None:
        result = ingested.invoke(cli, ["--db", db_path, "related", "js-1", "--depth", "1"])

        assert result.exit_code == 0, result.output
        assert "js-2" in result.output
        assert "py-1" in result.output
        assert "py-2" not in result.output

    def test_related_unknown_content(self, ingested, db_path) -> None:
        result = ingested.invoke(cli, ["--db", db_path, "related", "nothing"])
        assert "No related content found" in result.output

    def test_clusters(self, ingested, db_path) -> None:
        result = ingested.invoke(cli, ["--db", db_path, "clusters"])

        assert result.exit_code == 0, result.output
        assert "Javascript Cluster" in result.output

    def test_export_to_file(self, ingested, db_path, tmp_path) -> None:
        target = tmp_path / "graph.json"

        result = ingested.invoke(cli, ["--db", db_path, "export", "-o", str(target)])

        assert result.exit_code == 0, result.output
        blob = json.loads(target.read_text(encoding="utf-8"))
        assert len(blob["nodes"]) == 5
        assert len(blob["edges"]) == 6
        assert blob["version"] == 1
