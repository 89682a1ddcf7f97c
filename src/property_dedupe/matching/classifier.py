"""Acceptance and ranking of deep-analysis verdicts."""

from collections.abc import Iterable

from property_dedupe.config import DetectionConfig
from property_dedupe.models import (
    CandidateStatus,
    DeepAnalysisVerdict,
    DuplicateMatch,
    PairKey,
    PropertyRecord,
    ScoreBreakdown,
)


def is_accepted(verdict: DeepAnalysisVerdict, config: DetectionConfig) -> bool:
    """Whether a verdict turns its pair into a reported match.

    Oracle verdicts must clear both minimums. Fallback verdicts are always
    accepted so the pair surfaces for manual review instead of vanishing
    because the oracle was unavailable.
    """
    if verdict.is_fallback:
        return True
    return (
        verdict.similarity_score >= config.min_similarity
        and verdict.confidence >= config.min_confidence
    )


def build_match(
    key: PairKey,
    first: PropertyRecord,
    second: PropertyRecord,
    breakdown: ScoreBreakdown,
    verdict: DeepAnalysisVerdict,
) -> DuplicateMatch:
    """Combine basic-score evidence and the verdict into a DuplicateMatch."""
    return DuplicateMatch(
        pair_key=key,
        record_a=first,
        record_b=second,
        breakdown=breakdown,
        similarity_score=verdict.similarity_score,
        confidence=verdict.confidence,
        reasons=verdict.reasons,
        explanation=verdict.explanation,
        recommendation=verdict.recommendation,
        ai_enhanced=not verdict.is_fallback,
    )


def classify(
    key: PairKey,
    first: PropertyRecord,
    second: PropertyRecord,
    breakdown: ScoreBreakdown,
    verdict: DeepAnalysisVerdict,
    config: DetectionConfig,
) -> DuplicateMatch | None:
    """Return a DuplicateMatch for an accepted verdict, or None if rejected."""
    if not is_accepted(verdict, config):
        return None
    return build_match(key, first, second, breakdown, verdict)


def rank_matches(matches: Iterable[DuplicateMatch]) -> list[DuplicateMatch]:
    """Sort by confidence + similarity (descending), then by pair key."""
    return sorted(matches, key=lambda m: (-m.rank_score, m.pair_key))


_DIMENSION_LABELS = {
    "title": "Title",
    "address": "Address",
    "price": "Monthly rent",
    "location": "Location",
    "area": "Area",
    "rooms": "Bedrooms",
}


def candidate_status(breakdown: ScoreBreakdown, config: DetectionConfig) -> CandidateStatus:
    """Classify a cheap-score comparison of a new record against an existing one."""
    if breakdown.basic < config.duplicate_threshold:
        return CandidateStatus.UNIQUE
    if breakdown.basic >= config.strong_match_threshold:
        return CandidateStatus.DUPLICATE
    return CandidateStatus.POTENTIAL


def _strong_signals(breakdown: ScoreBreakdown) -> list[str]:
    scores = {
        name: getattr(breakdown, name)
        for name in breakdown.evaluated
        if (getattr(breakdown, name) or 0) > 70
    }
    ranked = sorted(scores, key=lambda name: (-scores[name], name))[:2]
    return [_DIMENSION_LABELS[name] for name in ranked]


def build_suggestion(breakdown: ScoreBreakdown, status: CandidateStatus) -> str:
    """Human-readable advice for an import-time duplicate check."""
    score = round(breakdown.basic)
    signals = " and ".join(_strong_signals(breakdown)) or "Several fields"
    if status == CandidateStatus.DUPLICATE:
        return (
            f"High confidence duplicate ({score}% match). {signals} are very similar. "
            "Skipping this import is strongly recommended."
        )
    if status == CandidateStatus.POTENTIAL:
        return (
            f"Potential duplicate ({score}% match). {signals} show similarities. "
            "Review carefully before importing."
        )
    return f"Appears to be a unique listing ({score}% match). Safe to import."
