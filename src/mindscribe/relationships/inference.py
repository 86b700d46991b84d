from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..models import ContentItem, Relationship, utcnow
from .scoring import AttributeScorer, PairScore, PairScorer

logger = logging.getLogger(__name__)


@dataclass
class InferenceOptions:
    min_strength: float = 0.3
    max_relationships: int = 10


@dataclass
class InferenceResult:
    """Outcome of one inference pass for a single item."""
    success: bool
    relationships: list[Relationship] = field(default_factory=list)
    reciprocals: list[Relationship] = field(default_factory=list)
    error: str | None = None
    processing_time_ms: float = 0.0

    def all_relationships(self) -> list[Relationship]:
        return self.relationships + self.reciprocals


class RelationshipInferenceEngine:
    """Computes the outbound relationships of one item against a candidate pool.

    The engine is pure: it reads nothing and writes nothing. Candidates are
    scored with a pluggable ``PairScorer``; pairs below ``min_strength`` are
    dropped and the rest are ranked by strength, ties keeping pool order.
    """

    def __init__(self, scorer: PairScorer | None = None, options: InferenceOptions | None = None):
        self.scorer = scorer or AttributeScorer()
        self.options = options or InferenceOptions()

    def infer(
        self,
        item: ContentItem | None,
        candidate_pool: Iterable[ContentItem],
        cap: int | None = None,
    ) -> InferenceResult:
        t0 = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - t0) * 1000.0

        if item is None or not getattr(item, "id", None):
            return InferenceResult(False, error="Content item is missing an id", processing_time_ms=elapsed())

        limit = self.options.max_relationships if cap is None else cap
        try:
            scored: list[tuple[ContentItem, PairScore]] = []
            for candidate in candidate_pool:
                if not getattr(candidate, "id", None):
                    logger.warning("Skipping candidate without id while scoring %s", item.id)
                    continue
                if candidate.id == item.id:
                    continue
                score = self.scorer.score(item, candidate)
                if score is None or score.strength < self.options.min_strength:
                    continue
                scored.append((candidate, score))

            # sort is stable: equal strengths keep candidate pool order
            scored.sort(key=lambda pair: pair[1].strength, reverse=True)
            scored = scored[: max(0, limit)]

            now = utcnow()
            relationships = [
                Relationship(
                    source_id=item.id,
                    target_id=candidate.id,
                    type=score.type,
                    strength=score.strength,
                    confidence=score.confidence,
                    created_at=now,
                    last_updated=now,
                )
                for candidate, score in scored
            ]
        except Exception as e:
            logger.error("Relationship inference failed for %s: %s", item.id, e)
            return InferenceResult(False, error=str(e), processing_time_ms=elapsed())

        return InferenceResult(
            True,
            relationships=relationships,
            reciprocals=[r.reciprocal() for r in relationships],
            processing_time_ms=elapsed(),
        )
