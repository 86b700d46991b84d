from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from ..models import ContentItem, Relationship, RelationshipType, format_datetime, utcnow
from .base import StoreResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS content (
  id TEXT PRIMARY KEY,
  title TEXT,
  category TEXT,
  concepts_json TEXT NOT NULL DEFAULT '[]',
  tags_json TEXT NOT NULL DEFAULT '[]',
  importance REAL NOT NULL DEFAULT 0.5,
  access_count INTEGER NOT NULL DEFAULT 0,
  last_accessed TEXT,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS relationships (
  id TEXT PRIMARY KEY,
  source_id TEXT NOT NULL,
  target_id TEXT NOT NULL,
  type TEXT NOT NULL,
  strength REAL NOT NULL,
  confidence REAL NOT NULL,
  created_at TEXT NOT NULL,
  last_updated TEXT
);

CREATE TABLE IF NOT EXISTS snapshots (
  key TEXT PRIMARY KEY,
  payload_json TEXT NOT NULL,
  version INTEGER,
  saved_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rel_source ON relationships(source_id);
CREATE INDEX IF NOT EXISTS idx_rel_target ON relationships(target_id);
CREATE INDEX IF NOT EXISTS idx_rel_type ON relationships(type);
CREATE INDEX IF NOT EXISTS idx_content_category ON content(category);
"""

_REL_COLUMNS = "id, source_id, target_id, type, strength, confidence, created_at, last_updated"
_CONTENT_COLUMNS = (
    "id, title, category, concepts_json, tags_json, importance, access_count, last_accessed, created_at"
)


def _row_to_content(row: tuple) -> ContentItem:
    return ContentItem(
        id=row[0],
        title=row[1] or "",
        category=row[2],
        concepts=json.loads(row[3] or "[]"),
        tags=json.loads(row[4] or "[]"),
        importance=row[5],
        access_count=row[6],
        last_accessed=row[7],
        created_at=row[8],
    )


def _row_to_relationship(row: tuple) -> Relationship:
    return Relationship(
        id=row[0],
        source_id=row[1],
        target_id=row[2],
        type=row[3],
        strength=row[4],
        confidence=row[5],
        created_at=row[6],
        last_updated=row[7],
    )


def _relationship_params(rel: Relationship) -> tuple:
    return (
        rel.id,
        rel.source_id,
        rel.target_id,
        rel.type.value,
        rel.strength,
        rel.confidence,
        format_datetime(rel.created_at),
        format_datetime(rel.last_updated),
    )


@dataclass
class SQLiteGraphDB:
    """Synchronous SQLite access for content, relationships and snapshots.

    One short-lived connection per call; the async adapters below run these
    methods on the event loop's default executor.
    """

    path: str

    def __post_init__(self):
        if self.path != ":memory:":
            p = Path(self.path).expanduser()
            p.parent.mkdir(parents=True, exist_ok=True)
            self.path = str(p)

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def init(self) -> None:
        con = self.connect()
        try:
            con.executescript(SCHEMA)
            con.commit()
        finally:
            con.close()

    # --- content ---

    def put_content(self, items: list[ContentItem]) -> int:
        con = self.connect()
        try:
            con.executemany(
                f"INSERT OR REPLACE INTO content({_CONTENT_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?)",
                [
                    (
                        i.id,
                        i.title,
                        i.category,
                        json.dumps(i.concepts),
                        json.dumps(i.tags),
                        i.importance,
                        i.access_count,
                        format_datetime(i.last_accessed),
                        format_datetime(i.created_at),
                    )
                    for i in items
                ],
            )
            con.commit()
            return len(items)
        finally:
            con.close()

    def get_content(self, content_id: str) -> ContentItem | None:
        con = self.connect()
        try:
            row = con.execute(
                f"SELECT {_CONTENT_COLUMNS} FROM content WHERE id=?", (content_id,)
            ).fetchone()
            return _row_to_content(row) if row else None
        finally:
            con.close()

    def list_content(self, category: str | None = None) -> list[ContentItem]:
        con = self.connect()
        try:
            if category is None:
                cur = con.execute(f"SELECT {_CONTENT_COLUMNS} FROM content ORDER BY rowid")
            else:
                cur = con.execute(
                    f"SELECT {_CONTENT_COLUMNS} FROM content WHERE category=? ORDER BY rowid", (category,)
                )
            return [_row_to_content(r) for r in cur]
        finally:
            con.close()

    def delete_content(self, content_id: str) -> bool:
        con = self.connect()
        try:
            cur = con.execute("DELETE FROM content WHERE id=?", (content_id,))
            con.commit()
            return cur.rowcount > 0
        finally:
            con.close()

    # --- relationships ---

    def insert_relationship(self, rel: Relationship) -> None:
        con = self.connect()
        try:
            con.execute(
                f"INSERT INTO relationships({_REL_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
                _relationship_params(rel),
            )
            con.commit()
        finally:
            con.close()

    def upsert_relationships(self, rels: list[Relationship]) -> int:
        con = self.connect()
        try:
            con.executemany(
                f"INSERT OR REPLACE INTO relationships({_REL_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
                [_relationship_params(r) for r in rels],
            )
            con.commit()
            return len(rels)
        finally:
            con.close()

    def select_relationships(self, where: str = "", params: tuple = ()) -> list[Relationship]:
        con = self.connect()
        try:
            q = f"SELECT {_REL_COLUMNS} FROM relationships"
            if where:
                q += f" WHERE {where}"
            cur = con.execute(q + " ORDER BY rowid", params)
            return [_row_to_relationship(r) for r in cur]
        finally:
            con.close()

    def delete_relationship(self, relationship_id: str) -> None:
        con = self.connect()
        try:
            con.execute("DELETE FROM relationships WHERE id=?", (relationship_id,))
            con.commit()
        finally:
            con.close()

    def clear_relationships(self) -> None:
        con = self.connect()
        try:
            con.execute("DELETE FROM relationships")
            con.commit()
        finally:
            con.close()

    # --- snapshots ---

    def get_snapshot(self, key: str) -> dict[str, Any] | None:
        con = self.connect()
        try:
            row = con.execute("SELECT payload_json FROM snapshots WHERE key=?", (key,)).fetchone()
            return json.loads(row[0]) if row else None
        finally:
            con.close()

    def put_snapshot(self, key: str, blob: dict[str, Any]) -> None:
        con = self.connect()
        try:
            con.execute(
                """
                INSERT INTO snapshots(key, payload_json, version, saved_at)
                VALUES(?,?,?,?)
                ON CONFLICT(key)
                DO UPDATE SET payload_json=excluded.payload_json, version=excluded.version,
                              saved_at=excluded.saved_at
                """,
                (key, json.dumps(blob, default=str), blob.get("version"), time.time()),
            )
            con.commit()
        finally:
            con.close()


class _SQLiteAdapter:
    def __init__(self, db: SQLiteGraphDB):
        self.db = db

    async def _run(self, fn: Callable[[], T], action: str) -> StoreResult[T]:
        t0 = time.perf_counter()
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, fn)
        except (sqlite3.Error, ValueError, TypeError) as e:
            logger.error("SQLite %s failed: %s", action, e)
            return StoreResult(
                False, error=f"Storage error: {e}", operation_time_ms=(time.perf_counter() - t0) * 1000.0
            )
        return StoreResult(True, data=data, operation_time_ms=(time.perf_counter() - t0) * 1000.0)


class SQLiteContentStore(_SQLiteAdapter):
    async def read(self, content_id: str) -> StoreResult[ContentItem]:
        res = await self._run(lambda: self.db.get_content(content_id), "content read")
        if res.success and res.data is None:
            return StoreResult(False, error="Content not found", operation_time_ms=res.operation_time_ms)
        return res

    async def list(self, filter: dict[str, Any] | None = None) -> StoreResult[list[ContentItem]]:
        category = (filter or {}).get("category")
        return await self._run(lambda: self.db.list_content(category), "content list")


class SQLiteRelationshipStore(_SQLiteAdapter):
    async def create(self, relationship: Relationship) -> StoreResult[Relationship]:
        def _insert() -> Relationship:
            self.db.insert_relationship(relationship)
            return relationship

        return await self._run(_insert, "relationship create")

    async def read(self, relationship_id: str) -> StoreResult[Relationship]:
        res = await self._run(lambda: self.db.select_relationships("id=?", (relationship_id,)), "relationship read")
        if not res.success:
            return StoreResult(False, error=res.error, operation_time_ms=res.operation_time_ms)
        if not res.data:
            return StoreResult(False, error="Relationship not found", operation_time_ms=res.operation_time_ms)
        return StoreResult(True, data=res.data[0], operation_time_ms=res.operation_time_ms)

    async def update(self, relationship_id: str, updates: dict[str, Any]) -> StoreResult[Relationship]:
        def _update() -> Relationship | None:
            rows = self.db.select_relationships("id=?", (relationship_id,))
            if not rows:
                return None
            merged = rows[0].to_dict()
            merged.update({k: v for k, v in updates.items() if k not in ("id", "created_at")})
            if isinstance(merged.get("type"), RelationshipType):
                merged["type"] = merged["type"].value
            merged["last_updated"] = updates.get("last_updated") or format_datetime(utcnow())
            rel = Relationship.from_dict(merged)
            self.db.upsert_relationships([rel])
            return rel

        res = await self._run(_update, "relationship update")
        if res.success and res.data is None:
            return StoreResult(
                False, error="Relationship not found for update", operation_time_ms=res.operation_time_ms
            )
        return res

    async def delete(self, relationship_id: str) -> StoreResult[None]:
        return await self._run(lambda: self.db.delete_relationship(relationship_id), "relationship delete")

    async def list_by_source(self, source_id: str) -> StoreResult[list[Relationship]]:
        return await self._run(lambda: self.db.select_relationships("source_id=?", (source_id,)), "list by source")

    async def list_by_target(self, target_id: str) -> StoreResult[list[Relationship]]:
        return await self._run(lambda: self.db.select_relationships("target_id=?", (target_id,)), "list by target")

    async def list_by_type(self, rel_type: RelationshipType) -> StoreResult[list[Relationship]]:
        value = RelationshipType(rel_type).value
        return await self._run(lambda: self.db.select_relationships("type=?", (value,)), "list by type")

    async def list(self) -> StoreResult[list[Relationship]]:
        return await self._run(self.db.select_relationships, "relationship list")

    async def bulk_create(self, relationships: list[Relationship]) -> StoreResult[int]:
        rels = list(relationships)
        return await self._run(lambda: self.db.upsert_relationships(rels), "relationship bulk create")

    async def clear(self) -> StoreResult[None]:
        return await self._run(self.db.clear_relationships, "relationship clear")


class SQLiteSnapshotSink(_SQLiteAdapter):
    def __init__(self, db: SQLiteGraphDB, key: str = "mindscribe-knowledge-graph"):
        super().__init__(db)
        self.key = key

    async def load(self) -> StoreResult[dict[str, Any] | None]:
        return await self._run(lambda: self.db.get_snapshot(self.key), "snapshot load")

    async def save(self, blob: dict[str, Any]) -> StoreResult[None]:
        return await self._run(lambda: self.db.put_snapshot(self.key, blob), "snapshot save")


def open_sqlite_stores(
    path: str, snapshot_key: str = "mindscribe-knowledge-graph"
) -> tuple[SQLiteContentStore, SQLiteRelationshipStore, SQLiteSnapshotSink]:
    db = SQLiteGraphDB(path=path)
    db.init()
    return SQLiteContentStore(db), SQLiteRelationshipStore(db), SQLiteSnapshotSink(db, key=snapshot_key)
