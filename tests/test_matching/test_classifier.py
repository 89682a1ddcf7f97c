"""Tests for verdict acceptance, ranking and import-time suggestions."""

from collections.abc import Callable

import pytest

from property_dedupe.config import DetectionConfig
from property_dedupe.matching.classifier import (
    build_suggestion,
    candidate_status,
    classify,
    is_accepted,
    rank_matches,
)
from property_dedupe.matching.oracle import fallback_verdict
from property_dedupe.models import (
    CandidateStatus,
    DeepAnalysisVerdict,
    DuplicateMatch,
    PairKey,
    PropertyRecord,
    Recommendation,
    ScoreBreakdown,
)


def _verdict(similarity: float, confidence: float, **kwargs: object) -> DeepAnalysisVerdict:
    return DeepAnalysisVerdict(similarity_score=similarity, confidence=confidence, **kwargs)


def _match(
    make_record: Callable[..., PropertyRecord],
    a: str,
    b: str,
    similarity: float,
    confidence: float,
) -> DuplicateMatch:
    key = PairKey.of(a, b)
    return DuplicateMatch(
        pair_key=key,
        record_a=make_record(key.first),
        record_b=make_record(key.second),
        breakdown=ScoreBreakdown(basic=80),
        similarity_score=similarity,
        confidence=confidence,
        recommendation=Recommendation.REVIEW,
        ai_enhanced=True,
    )


class TestIsAccepted:
    @pytest.mark.parametrize(
        ("similarity", "confidence", "expected"),
        [
            (96, 90, True),
            (85, 80, True),
            (84.9, 90, False),
            (96, 79.9, False),
            (50, 30, False),
        ],
    )
    def test_thresholds(
        self,
        config: DetectionConfig,
        similarity: float,
        confidence: float,
        expected: bool,
    ) -> None:
        assert is_accepted(_verdict(similarity, confidence), config) is expected

    def test_fallback_always_accepted(self, config: DetectionConfig) -> None:
        assert is_accepted(fallback_verdict(), config)

    def test_custom_thresholds(self) -> None:
        config = DetectionConfig(min_similarity=60, min_confidence=50)
        assert is_accepted(_verdict(65, 55), config)


class TestClassify:
    def test_accepted_verdict_builds_match(
        self,
        duplicate_pair: tuple[PropertyRecord, PropertyRecord],
        config: DetectionConfig,
    ) -> None:
        first, second = duplicate_pair
        verdict = _verdict(
            96,
            90,
            reasons=("Same address",),
            explanation="Same flat.",
            recommendation=Recommendation.MERGE,
        )
        match = classify(
            PairKey.of(first.id, second.id),
            first,
            second,
            ScoreBreakdown(basic=88),
            verdict,
            config,
        )
        assert match is not None
        assert match.recommendation == Recommendation.MERGE
        assert match.reasons == ("Same address",)
        assert match.ai_enhanced is True
        assert match.rank_score == 186

    def test_rejected_verdict(
        self,
        duplicate_pair: tuple[PropertyRecord, PropertyRecord],
        config: DetectionConfig,
    ) -> None:
        first, second = duplicate_pair
        verdict = _verdict(40, 90, recommendation=Recommendation.DISMISS)
        key = PairKey.of(first.id, second.id)
        assert classify(key, first, second, ScoreBreakdown(basic=75), verdict, config) is None

    def test_fallback_match_not_ai_enhanced(
        self,
        duplicate_pair: tuple[PropertyRecord, PropertyRecord],
        config: DetectionConfig,
    ) -> None:
        first, second = duplicate_pair
        key = PairKey.of(first.id, second.id)
        match = classify(key, first, second, ScoreBreakdown(basic=75), fallback_verdict(), config)
        assert match is not None
        assert match.ai_enhanced is False
        assert match.confidence == 30
        assert match.recommendation == Recommendation.REVIEW


class TestRankMatches:
    def test_sorted_by_confidence_plus_similarity(
        self, make_record: Callable[..., PropertyRecord]
    ) -> None:
        low = _match(make_record, "a", "b", 86, 81)
        high = _match(make_record, "c", "d", 99, 95)
        mid = _match(make_record, "e", "f", 90, 90)
        assert rank_matches([low, high, mid]) == [high, mid, low]

    def test_ties_broken_by_pair_key(self, make_record: Callable[..., PropertyRecord]) -> None:
        later = _match(make_record, "x", "y", 90, 90)
        earlier = _match(make_record, "b", "a", 95, 85)
        assert [m.pair_key for m in rank_matches([later, earlier])] == [
            PairKey("a", "b"),
            PairKey("x", "y"),
        ]

    def test_empty(self) -> None:
        assert rank_matches([]) == []


class TestCandidateStatus:
    @pytest.mark.parametrize(
        ("basic", "expected"),
        [
            (100, CandidateStatus.DUPLICATE),
            (85, CandidateStatus.DUPLICATE),
            (84.9, CandidateStatus.POTENTIAL),
            (70, CandidateStatus.POTENTIAL),
            (69.9, CandidateStatus.UNIQUE),
            (0, CandidateStatus.UNIQUE),
        ],
    )
    def test_bands(self, config: DetectionConfig, basic: float, expected: CandidateStatus) -> None:
        assert candidate_status(ScoreBreakdown(basic=basic), config) == expected


class TestBuildSuggestion:
    def test_duplicate(self) -> None:
        breakdown = ScoreBreakdown(
            title=60,
            address=100,
            price=95,
            basic=91.2,
            evaluated=frozenset({"title", "address", "price"}),
        )
        suggestion = build_suggestion(breakdown, CandidateStatus.DUPLICATE)
        assert suggestion.startswith("High confidence duplicate (91% match).")
        assert "Address and Monthly rent are very similar" in suggestion

    def test_potential(self) -> None:
        breakdown = ScoreBreakdown(
            title=40,
            address=90,
            price=50,
            basic=74,
            evaluated=frozenset({"title", "address", "price"}),
        )
        suggestion = build_suggestion(breakdown, CandidateStatus.POTENTIAL)
        assert suggestion.startswith("Potential duplicate (74% match).")
        assert "Address show similarities" in suggestion
        assert suggestion.endswith("Review carefully before importing.")

    def test_unique(self) -> None:
        suggestion = build_suggestion(ScoreBreakdown(basic=12), CandidateStatus.UNIQUE)
        assert suggestion == "Appears to be a unique listing (12% match). Safe to import."

    def test_no_strong_signals(self) -> None:
        breakdown = ScoreBreakdown(
            title=70, address=70, price=70, basic=70, evaluated=frozenset({"title"})
        )
        suggestion = build_suggestion(breakdown, CandidateStatus.POTENTIAL)
        assert "Several fields show similarities" in suggestion
