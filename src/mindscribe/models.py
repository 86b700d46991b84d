from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class RelationshipType(Enum):
    """Kinds of relationship inferred between two saved items."""
    SIMILAR = "similar"
    BUILDS_ON = "builds_on"
    CONTRADICTS = "contradicts"
    REFERENCES = "references"
    RELATED = "related"


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_datetime(value: Any) -> datetime | None:
    """Accept datetimes, ISO strings or epoch seconds; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(float(value), UTC)
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _unique(values: Any) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values or []:
        s = str(v).strip()
        if s and s not in seen:
            seen.add(s)
            out.append(s)
    return out


def relationship_id(source_id: str, target_id: str) -> str:
    return f"{source_id}->{target_id}"


@dataclass
class ContentItem:
    """A saved piece of web content, as seen by the graph subsystem.

    Concepts and tags come from upstream AI processing and are kept as
    ordered, de-duplicated lists.
    """

    id: str
    title: str = ""
    category: str | None = None
    concepts: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    importance: float = 0.5
    access_count: int = 0
    last_accessed: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.concepts = _unique(self.concepts)
        self.tags = _unique(self.tags)
        self.importance = clamp01(self.importance)
        self.access_count = max(0, int(self.access_count or 0))
        self.created_at = parse_datetime(self.created_at) or utcnow()
        self.last_accessed = parse_datetime(self.last_accessed) or self.created_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "concepts": list(self.concepts),
            "tags": list(self.tags),
            "importance": self.importance,
            "access_count": self.access_count,
            "last_accessed": format_datetime(self.last_accessed),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentItem":
        importance = data.get("importance")
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or "",
            category=data.get("category") or None,
            concepts=data.get("concepts") or [],
            tags=data.get("tags") or [],
            importance=0.5 if importance is None else importance,
            access_count=data.get("access_count", data.get("times_accessed", 0)),
            last_accessed=data.get("last_accessed"),
            created_at=data.get("created_at"),
        )


@dataclass
class Relationship:
    """A directed, typed and weighted link between two content items."""

    source_id: str
    target_id: str
    type: RelationshipType = RelationshipType.RELATED
    strength: float = 0.0
    confidence: float = 0.0
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime | None = None

    def __post_init__(self):
        if not isinstance(self.type, RelationshipType):
            self.type = RelationshipType(self.type)
        self.strength = clamp01(self.strength)
        self.confidence = clamp01(self.confidence)
        if not self.id:
            self.id = relationship_id(self.source_id, self.target_id)
        self.created_at = parse_datetime(self.created_at) or utcnow()
        self.last_updated = parse_datetime(self.last_updated) or self.created_at

    def reciprocal(self) -> "Relationship":
        """The mirrored B->A record carrying the same type and scores."""
        return replace(
            self,
            id=relationship_id(self.target_id, self.source_id),
            source_id=self.target_id,
            target_id=self.source_id,
        )

    def involves(self, content_id: str) -> bool:
        return content_id in (self.source_id, self.target_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "created_at": format_datetime(self.created_at),
            "last_updated": format_datetime(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Relationship":
        return cls(
            id=data.get("id") or "",
            source_id=data["source_id"],
            target_id=data["target_id"],
            type=data.get("type") or RelationshipType.RELATED.value,
            strength=data.get("strength", 0.0),
            confidence=data.get("confidence", 0.0),
            created_at=data.get("created_at"),
            last_updated=data.get("last_updated"),
        )
