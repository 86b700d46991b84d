from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ..models import ContentItem, RelationshipType, clamp01


@dataclass(slots=True)
class PairScore:
    """Scorer output for one (item, candidate) pair. All values lie in [0, 1]."""

    strength: float
    confidence: float
    type: RelationshipType = RelationshipType.RELATED
    reasons: list[str] = field(default_factory=list)


class PairScorer(Protocol):
    """Pluggable relationship scorer.

    Must be deterministic for fixed inputs and return values in [0, 1].
    Returning None means "no relationship signal at all".
    """

    def score(self, item: ContentItem, candidate: ContentItem) -> PairScore | None: ...


def jaccard(a: list[str], b: list[str]) -> tuple[float, list[str]]:
    """Case-insensitive Jaccard similarity plus the shared values (in ``a`` order)."""
    set_a = {x.lower() for x in a}
    set_b = {x.lower() for x in b}
    union = set_a | set_b
    if not union:
        return 0.0, []
    shared = [x for x in a if x.lower() in set_b]
    return len(set_a & set_b) / len(union), shared


@dataclass(slots=True)
class AttributeScorer:
    """Scores two items from shared concepts, shared tags and category equality.

    A signal only counts when both items carry it, and the weighted sum is
    normalised over the contributing signals, so two items sharing a
    category but lacking concepts are not penalised for the missing data.
    """

    concept_weight: float = 0.5
    tag_weight: float = 0.25
    category_weight: float = 0.25
    reason_threshold: float = 0.3

    def score(self, item: ContentItem, candidate: ContentItem) -> PairScore | None:
        total = 0.0
        weight_sum = 0.0
        reasons: list[str] = []
        concept_match = False
        category_match = False

        if self.category_weight > 0 and item.category and candidate.category:
            same = item.category.lower() == candidate.category.lower()
            total += self.category_weight * (1.0 if same else 0.0)
            weight_sum += self.category_weight
            if same:
                category_match = True
                reasons.append(f"Same category: {item.category}")

        if self.concept_weight > 0 and item.concepts and candidate.concepts:
            sim, shared = jaccard(item.concepts, candidate.concepts)
            total += self.concept_weight * sim
            weight_sum += self.concept_weight
            if sim > self.reason_threshold:
                concept_match = True
                reasons.append(f"Shared concepts: {', '.join(shared[:3])}")

        if self.tag_weight > 0 and item.tags and candidate.tags:
            sim, shared = jaccard(item.tags, candidate.tags)
            total += self.tag_weight * sim
            weight_sum += self.tag_weight
            if sim > self.reason_threshold:
                reasons.append(f"Shared tags: {', '.join(shared[:3])}")

        if weight_sum <= 0:
            return None

        strength = clamp01(total / weight_sum)
        return PairScore(
            strength=strength,
            confidence=self.confidence(strength, len(reasons)),
            type=self.relationship_type(strength, concept_match, category_match),
            reasons=reasons,
        )

    @staticmethod
    def confidence(strength: float, reason_count: int) -> float:
        # Each additional agreeing signal adds 0.1.
        confidence = strength
        if reason_count > 1:
            confidence = min(1.0, confidence + (reason_count - 1) * 0.1)
        return round(clamp01(confidence), 2)

    @staticmethod
    def relationship_type(strength: float, concept_match: bool, category_match: bool) -> RelationshipType:
        if strength > 0.7 and concept_match:
            return RelationshipType.BUILDS_ON
        if strength > 0.6 and category_match:
            return RelationshipType.SIMILAR
        return RelationshipType.RELATED
