"""Duplicate detection runs: funnel, deep analysis and ranking."""

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from pydantic import ValidationError

from property_dedupe.config import DetectionConfig, Settings
from property_dedupe.errors import InvalidConfigError, InvalidInputError
from property_dedupe.logging import get_logger, run_context
from property_dedupe.matching.classifier import (
    build_match,
    build_suggestion,
    candidate_status,
    classify,
    rank_matches,
)
from property_dedupe.matching.oracle import (
    REQUEST_TIMEOUT,
    ClaudeDuplicateOracle,
    DeepAnalysisAdapter,
    DuplicateOracle,
)
from property_dedupe.matching.pairs import (
    EligibilityPredicate,
    eligible_records,
    is_active,
    iter_pairs,
)
from property_dedupe.matching.scoring import calculate_basic_score
from property_dedupe.models import (
    CandidateAssessment,
    CandidateStatus,
    DeepAnalysisVerdict,
    DetectionResult,
    DuplicateMatch,
    PairKey,
    PropertyRecord,
    ScoreBreakdown,
)

logger = get_logger(__name__)

DEFAULT_ANALYSIS_CONCURRENCY: Final = 5

RecordInput = PropertyRecord | Mapping[str, Any]


@dataclass(frozen=True)
class _Candidate:
    """A pair that passed the funnel gate."""

    key: PairKey
    first: PropertyRecord
    second: PropertyRecord
    breakdown: ScoreBreakdown


def _coerce_record(item: RecordInput) -> PropertyRecord:
    if isinstance(item, PropertyRecord):
        return item
    return PropertyRecord.model_validate(item)


def _coerce_records(records: Iterable[RecordInput]) -> tuple[list[PropertyRecord], int]:
    """Parse input records, skipping (and counting) ones that fail validation.

    Raises:
        InvalidInputError: If ``records`` is not a collection of records at all.
    """
    if isinstance(records, str | bytes | Mapping):
        raise InvalidInputError("Expected a collection of property records")
    try:
        items = list(records)
    except TypeError as e:
        raise InvalidInputError("Expected a collection of property records") from e

    parsed: list[PropertyRecord] = []
    rejected = 0
    for index, item in enumerate(items):
        try:
            parsed.append(_coerce_record(item))
        except ValidationError as e:
            rejected += 1
            logger.warning(
                "invalid_record_skipped",
                index=index,
                error_count=e.error_count(),
                errors=[err["loc"] for err in e.errors()],
            )
    return parsed, rejected


class DuplicateDetector:
    """Find likely duplicate listings within a property portfolio.

    The detector holds only its configuration and oracle. All per-run state
    (seen pairs, circuit breaker, results) lives inside ``find_duplicates``,
    so one detector can serve concurrent runs.
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        *,
        oracle: DuplicateOracle | None = None,
        max_concurrent_analyses: int = DEFAULT_ANALYSIS_CONCURRENCY,
        oracle_timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the detector.

        Args:
            config: Weights and thresholds. Defaults to DetectionConfig().
            oracle: Deep-analysis oracle. None runs without AI enhancement;
                funnel-passed pairs then get the fallback verdict.
            max_concurrent_analyses: Maximum oracle calls in flight.
            oracle_timeout: Seconds allowed per oracle call.
        """
        if max_concurrent_analyses < 1:
            raise ValueError("max_concurrent_analyses must be at least 1")
        self._config = (config or DetectionConfig()).model_copy(deep=True)
        self._oracle = oracle
        self._max_concurrent_analyses = max_concurrent_analyses
        self._oracle_timeout = oracle_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "DuplicateDetector":
        """Build a detector (and Claude oracle, if configured) from settings."""
        oracle: DuplicateOracle | None = None
        if settings.deep_analysis_available:
            oracle = ClaudeDuplicateOracle(
                api_key=settings.anthropic_api_key.get_secret_value(),
                model=settings.oracle_model,
                timeout=settings.oracle_timeout_seconds,
            )
        else:
            logger.info("deep_analysis_disabled", reason="not_configured")
        return cls(
            settings.get_detection_config(),
            oracle=oracle,
            max_concurrent_analyses=settings.max_concurrent_analyses,
            oracle_timeout=settings.oracle_timeout_seconds,
        )

    @property
    def oracle(self) -> DuplicateOracle | None:
        return self._oracle

    def get_config(self) -> DetectionConfig:
        """Return a copy of the current configuration."""
        return self._config.model_copy(deep=True)

    def update_config(
        self, changes: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> DetectionConfig:
        """Merge ``changes`` over the current configuration.

        Unspecified fields keep their values. An invalid result is rejected
        and the previous configuration stays in effect.

        Raises:
            InvalidConfigError: If the merged configuration fails validation.
        """
        updated = self._merged_config(changes, kwargs)
        self._config = updated
        logger.info(
            "detection_config_updated",
            fields=sorted({*(changes or {}), *kwargs}),
        )
        return self.get_config()

    def _merged_config(self, *partials: Mapping[str, Any] | None) -> DetectionConfig:
        merged = self._config.model_dump()
        for partial in partials:
            if partial:
                merged.update(partial)
        try:
            return DetectionConfig.model_validate(merged)
        except ValidationError as e:
            logger.warning(
                "invalid_config_rejected",
                error_count=e.error_count(),
                errors=[err["msg"] for err in e.errors()],
            )
            raise InvalidConfigError(str(e)) from e

    async def find_duplicates(
        self,
        records: Iterable[RecordInput],
        *,
        overrides: Mapping[str, Any] | None = None,
        is_eligible: EligibilityPredicate | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DetectionResult:
        """Detect duplicate pairs within one portfolio.

        Args:
            records: Property records (models or mappings) for a single owner.
            overrides: Partial config applied to this run only.
            is_eligible: Predicate deciding which records take part. Defaults
                to active listings only.
            cancel_event: When set, no further oracle calls are started and the
                matches collected so far are returned.

        Returns:
            DetectionResult with ranked matches and run metadata.

        Raises:
            InvalidInputError: If ``records`` cannot be enumerated.
            InvalidConfigError: If ``overrides`` produce an invalid configuration.
        """
        config = self._merged_config(overrides) if overrides else self.get_config()
        parsed, rejected = _coerce_records(records)

        with run_context() as run_id:
            return await self._detect(
                run_id,
                config,
                parsed,
                rejected=rejected,
                is_eligible=is_eligible or is_active,
                cancel=cancel_event or asyncio.Event(),
            )

    async def _detect(
        self,
        run_id: str,
        config: DetectionConfig,
        parsed: list[PropertyRecord],
        *,
        rejected: int,
        is_eligible: EligibilityPredicate,
        cancel: asyncio.Event,
    ) -> DetectionResult:
        candidates = eligible_records(parsed, is_eligible)

        logger.info(
            "duplicate_detection_started",
            record_count=len(parsed),
            eligible_count=len(candidates),
            rejected_records=rejected,
            duplicate_threshold=config.duplicate_threshold,
            ai_enhanced=self._oracle is not None,
        )

        # Funnel: cheap local score before any oracle call
        forwarded: list[_Candidate] = []
        enumerated = 0
        for key, first, second in iter_pairs(candidates):
            enumerated += 1
            breakdown = calculate_basic_score(first, second, config)
            if breakdown.basic >= config.duplicate_threshold:
                forwarded.append(_Candidate(key, first, second, breakdown))
                logger.debug("pair_forwarded", pair=str(key), score=breakdown.to_dict())
            else:
                logger.debug("pair_dropped", pair=str(key), basic_score=round(breakdown.basic, 2))

        analyzer = DeepAnalysisAdapter(self._oracle, timeout=self._oracle_timeout)
        semaphore = asyncio.Semaphore(self._max_concurrent_analyses)

        async def _analyze_one(
            candidate: _Candidate,
        ) -> tuple[_Candidate, DeepAnalysisVerdict | None]:
            async with semaphore:
                if cancel.is_set():
                    return candidate, None
                return candidate, await analyzer.analyze(candidate.first, candidate.second)

        matches: list[DuplicateMatch] = []
        fallback_count = 0
        skipped_count = 0
        tasks = [asyncio.create_task(_analyze_one(c)) for c in forwarded]

        try:
            for coro in asyncio.as_completed(tasks):
                candidate, verdict = await coro
                if verdict is None:
                    skipped_count += 1
                    continue
                if verdict.is_fallback:
                    fallback_count += 1
                match = classify(
                    candidate.key,
                    candidate.first,
                    candidate.second,
                    candidate.breakdown,
                    verdict,
                    config,
                )
                if match is None:
                    logger.debug(
                        "pair_rejected",
                        pair=str(candidate.key),
                        similarity_score=verdict.similarity_score,
                        confidence=verdict.confidence,
                    )
                    continue
                matches.append(match)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        result = DetectionResult(
            run_id=run_id,
            matches=tuple(rank_matches(matches)),
            total_considered=len(candidates),
            rejected_records=rejected,
            ai_enhanced=self._oracle is not None,
            pairs_enumerated=enumerated,
            pairs_forwarded=len(forwarded),
            fallback_count=fallback_count,
            skipped_count=skipped_count,
            cancelled=cancel.is_set(),
        )

        logger.info(
            "duplicate_detection_complete",
            eligible_count=result.total_considered,
            pairs_enumerated=result.pairs_enumerated,
            pairs_forwarded=result.pairs_forwarded,
            match_count=len(result.matches),
            fallback_count=result.fallback_count,
            skipped_count=result.skipped_count,
            cancelled=result.cancelled,
        )
        return result

    async def analyze_pair(self, first: RecordInput, second: RecordInput) -> DuplicateMatch:
        """Score and deep-analyze one explicit pair.

        No funnel gate and no acceptance thresholds are applied; the verdict
        is returned as-is (or the fallback verdict if the oracle fails).

        Raises:
            ValueError: If both records share the same id or fail validation.
        """
        record1 = _coerce_record(first)
        record2 = _coerce_record(second)
        key = PairKey.of(record1.id, record2.id)
        if record1.id != key.first:
            record1, record2 = record2, record1

        config = self.get_config()
        breakdown = calculate_basic_score(record1, record2, config)
        analyzer = DeepAnalysisAdapter(self._oracle, timeout=self._oracle_timeout)
        verdict = await analyzer.analyze(record1, record2)

        logger.info(
            "pair_analyzed",
            pair=str(key),
            basic_score=round(breakdown.basic, 2),
            recommendation=verdict.recommendation.value,
            ai_enhanced=not verdict.is_fallback,
        )
        return build_match(key, record1, record2, breakdown, verdict)

    def assess_candidates(
        self,
        new_record: RecordInput,
        existing: Iterable[RecordInput],
        *,
        is_eligible: EligibilityPredicate | None = None,
    ) -> list[CandidateAssessment]:
        """Check a new record against an existing portfolio with the basic score only.

        Args:
            new_record: Record about to be imported.
            existing: Records already in the portfolio.
            is_eligible: Predicate deciding which existing records are compared.

        Returns:
            Duplicate and potential-duplicate assessments, best first.
        """
        record = _coerce_record(new_record)
        config = self.get_config()
        parsed, _ = _coerce_records(existing)

        assessments: list[CandidateAssessment] = []
        for other in eligible_records(parsed, is_eligible or is_active):
            if other.id == record.id:
                continue
            breakdown = calculate_basic_score(record, other, config)
            status = candidate_status(breakdown, config)
            if status == CandidateStatus.UNIQUE:
                continue
            assessments.append(
                CandidateAssessment(
                    existing=other,
                    breakdown=breakdown,
                    status=status,
                    suggestion=build_suggestion(breakdown, status),
                )
            )

        assessments.sort(key=lambda a: (-a.breakdown.basic, a.existing.id))
        logger.info(
            "candidate_check_complete",
            record_id=record.id,
            compared=len(parsed),
            flagged=len(assessments),
        )
        return assessments

    async def close(self) -> None:
        """Release oracle resources."""
        close = getattr(self._oracle, "close", None)
        if close is not None:
            await close()
