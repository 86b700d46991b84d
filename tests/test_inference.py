"""Tests for pairwise scoring and the relationship inference engine."""

from __future__ import annotations

import pytest
from conftest import make_item

from mindscribe.models import ContentItem, RelationshipType
from mindscribe.relationships import (
    AttributeScorer,
    InferenceOptions,
    PairScore,
    RelationshipInferenceEngine,
    jaccard,
)


class _ConstantScorer:
    def __init__(self, strength: float) -> None:
        self.strength = strength

    def score(self, item, candidate):
        return PairScore(strength=self.strength, confidence=self.strength)


class _ExplodingScorer:
    def score(self, item, candidate):
        raise ValueError("scorer exploded")


class TestJaccard:
    def test_case_insensitive_overlap(self) -> None:
        sim, shared = jaccard(["Python", "ML"], ["python"])
        assert sim == pytest.approx(0.5)
        assert shared == ["Python"]

    def test_empty_inputs(self) -> None:
        assert jaccard([], []) == (0.0, [])


class TestAttributeScorer:
    def test_partial_overlap(self, corpus) -> None:
        js1, js2 = corpus[0], corpus[1]
        score = AttributeScorer().score(js1, js2)

        assert score is not None
        assert score.strength == pytest.approx(0.25 + 0.5 / 3 + 0.125)
        # category, concepts and tags all agree: +0.2 confidence
        assert score.confidence == 0.74
        assert score.type is RelationshipType.RELATED
        assert len(score.reasons) == 3

    def test_identical_concepts_build_on(self) -> None:
        a = make_item("a", ["graphs", "python"], category="tutorial")
        b = make_item("b", ["graphs", "python"], category="tutorial")
        score = AttributeScorer().score(a, b)

        assert score.strength == pytest.approx(1.0)
        assert score.confidence == 1.0
        assert score.type is RelationshipType.BUILDS_ON

    def test_category_only_is_similar(self) -> None:
        a = make_item("a", category="Tutorial")
        b = make_item("b", category="tutorial")
        score = AttributeScorer().score(a, b)

        assert score.strength == pytest.approx(1.0)
        assert score.type is RelationshipType.SIMILAR

    def test_no_comparable_signal_returns_none(self) -> None:
        a = make_item("a", concepts=["x"])
        b = make_item("b", tags=["y"])
        assert AttributeScorer().score(a, b) is None

    def test_values_stay_in_unit_interval(self, corpus) -> None:
        scorer = AttributeScorer()
        for a in corpus:
            for b in corpus:
                score = scorer.score(a, b)
                if score is None:
                    continue
                assert 0.0 <= score.strength <= 1.0
                assert 0.0 <= score.confidence <= 1.0


class TestRelationshipInferenceEngine:
    def test_ranks_by_strength(self, corpus) -> None:
        result = RelationshipInferenceEngine().infer(corpus[0], corpus)

        assert result.success
        assert [r.target_id for r in result.relationships] == ["js-2", "py-1"]
        assert all(r.source_id == "js-1" for r in result.relationships)
        assert [r.id for r in result.reciprocals] == ["js-2->js-1", "py-1->js-1"]

    def test_never_relates_item_to_itself(self, corpus) -> None:
        result = RelationshipInferenceEngine(scorer=_ConstantScorer(0.9)).infer(corpus[0], corpus)
        assert "js-1" not in {r.target_id for r in result.relationships}
        assert len(result.relationships) == len(corpus) - 1

    def test_cap_truncates(self, corpus) -> None:
        result = RelationshipInferenceEngine().infer(corpus[0], corpus, cap=1)
        assert [r.target_id for r in result.relationships] == ["js-2"]

    def test_min_strength_filters(self, corpus) -> None:
        engine = RelationshipInferenceEngine(options=InferenceOptions(min_strength=0.5))
        result = engine.infer(corpus[0], corpus)
        assert [r.target_id for r in result.relationships] == ["js-2"]

    def test_ties_keep_pool_order(self, corpus) -> None:
        engine = RelationshipInferenceEngine(scorer=_ConstantScorer(0.5))
        pool = list(reversed(corpus))
        result = engine.infer(corpus[0], pool)
        assert [r.target_id for r in result.relationships] == [c.id for c in pool if c.id != "js-1"]

    def test_missing_item_id_reports_failure(self, corpus) -> None:
        result = RelationshipInferenceEngine().infer(ContentItem(id=""), corpus)
        assert not result.success
        assert result.relationships == []
        assert result.error

    def test_candidates_without_id_are_skipped(self, corpus) -> None:
        pool = [ContentItem(id="", concepts=["javascript"], category="tutorial"), *corpus]
        result = RelationshipInferenceEngine().infer(corpus[0], pool)
        assert result.success
        assert "" not in {r.target_id for r in result.relationships}

    def test_scorer_failure_is_reported_not_raised(self, corpus) -> None:
        result = RelationshipInferenceEngine(scorer=_ExplodingScorer()).infer(corpus[0], corpus)
        assert not result.success
        assert "exploded" in result.error

    def test_no_store_access(self, corpus) -> None:
        engine = RelationshipInferenceEngine()
        first = engine.infer(corpus[2], corpus)
        second = engine.infer(corpus[2], corpus)
        assert [(r.id, r.strength) for r in first.relationships] == [(r.id, r.strength) for r in second.relationships]
