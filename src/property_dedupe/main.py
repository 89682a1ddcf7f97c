"""Command-line entry point for duplicate detection."""

import argparse
import asyncio
import contextlib
import json
import signal
import sys
from pathlib import Path
from typing import Any

from property_dedupe.config import Settings
from property_dedupe.errors import DedupeError, InvalidInputError
from property_dedupe.logging import configure_logging, get_logger
from property_dedupe.matching.engine import DuplicateDetector
from property_dedupe.models import CandidateAssessment, DetectionResult, DuplicateMatch

logger = get_logger(__name__)


def load_records(path: Path) -> list[dict[str, Any]]:
    """Load property records from a JSON file.

    Accepts either a list of records or an object with a "properties" list.

    Raises:
        InvalidInputError: If the file cannot be read or has the wrong shape.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InvalidInputError(f"Cannot read records from {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("properties")
    if not isinstance(data, list):
        raise InvalidInputError(f"{path} must contain a list of property records")
    return data


def build_detector(settings: Settings, *, use_oracle: bool) -> DuplicateDetector:
    """Create the detector, optionally without deep analysis."""
    if use_oracle:
        return DuplicateDetector.from_settings(settings)
    return DuplicateDetector(
        settings.get_detection_config(),
        max_concurrent_analyses=settings.max_concurrent_analyses,
    )


def format_match(rank: int, match: DuplicateMatch) -> str:
    """One human-readable block per match."""
    source = "AI" if match.ai_enhanced else "fallback"
    lines = [
        f"{rank}. [{match.recommendation.value}] {match.record_a.title!r} "
        f"<-> {match.record_b.title!r}",
        f"   ids: {match.pair_key.first}, {match.pair_key.second}",
        f"   basic score {match.breakdown.basic:.0f} | similarity "
        f"{match.similarity_score:.0f} | confidence {match.confidence:.0f} ({source})",
    ]
    lines.extend(f"   - {reason}" for reason in match.reasons)
    if match.explanation:
        lines.append(f"   {match.explanation}")
    return "\n".join(lines)


def format_result(result: DetectionResult) -> str:
    """Summary of a detection run."""
    header = (
        f"Analyzed {result.total_considered} properties "
        f"({result.pairs_enumerated} pairs, {result.pairs_forwarded} sent to deep analysis)"
    )
    lines = [header]
    if result.fallback_count:
        lines.append(f"{result.fallback_count} pair(s) used the fallback verdict")
    if result.cancelled:
        lines.append(f"Run cancelled: {result.skipped_count} pair(s) not analyzed")
    if not result.matches:
        lines.append("No duplicates found.")
    lines.extend(format_match(i, m) for i, m in enumerate(result.matches, start=1))
    return "\n".join(lines)


def format_assessment(assessment: CandidateAssessment) -> str:
    return (
        f"[{assessment.status.value}] {assessment.existing.id} "
        f"{assessment.existing.title!r}: {assessment.suggestion}"
    )


async def run_detection(
    detector: DuplicateDetector,
    records: list[dict[str, Any]],
    *,
    overrides: dict[str, Any] | None = None,
) -> DetectionResult:
    """Run detection, cancelling pending oracle calls on Ctrl-C."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)

    try:
        return await detector.find_duplicates(
            records, overrides=overrides, cancel_event=cancel_event
        )
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await detector.close()


async def run_pair_analysis(
    detector: DuplicateDetector,
    records: list[dict[str, Any]],
    first_id: str,
    second_id: str,
) -> DuplicateMatch:
    """Deep-analyze two records picked by id."""
    by_id = {str(r.get("id")): r for r in records if isinstance(r, dict)}
    missing = [i for i in (first_id, second_id) if i not in by_id]
    if missing:
        raise InvalidInputError(f"Unknown property id(s): {', '.join(missing)}")
    try:
        return await detector.analyze_pair(by_id[first_id], by_id[second_id])
    finally:
        await detector.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Property Dedupe - find duplicate listings in a property portfolio"
    )
    parser.add_argument(
        "input",
        type=Path,
        help='JSON file with a list of property records (or {"properties": [...]})',
    )
    parser.add_argument(
        "--pair",
        nargs=2,
        metavar=("ID_A", "ID_B"),
        help="Deep-analyze a single pair of records instead of the whole portfolio",
    )
    parser.add_argument(
        "--check",
        metavar="ID",
        help="Check one record against the rest using the basic score only",
    )
    parser.add_argument(
        "--no-oracle",
        action="store_true",
        help="Skip deep analysis; funnel-passed pairs are reported for manual review",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Override the basic-score funnel threshold for this run",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    args = parser.parse_args(argv)

    import logging

    configure_logging(json_output=False, level=logging.DEBUG if args.debug else logging.INFO)

    try:
        settings = Settings()
    except Exception as e:
        logger.error("failed_to_load_settings", error=str(e))
        print(f"Error: Failed to load settings. {e}")
        print("Optional: PROPERTY_DEDUPE_ANTHROPIC_API_KEY enables deep analysis")
        sys.exit(1)

    try:
        records = load_records(args.input)
        detector = build_detector(settings, use_oracle=not args.no_oracle)

        if args.check:
            target = next(
                (r for r in records if isinstance(r, dict) and str(r.get("id")) == args.check),
                None,
            )
            if target is None:
                raise InvalidInputError(f"Unknown property id: {args.check}")
            assessments = detector.assess_candidates(target, records)
            if args.json:
                print(json.dumps([a.model_dump(mode="json") for a in assessments], indent=2))
            elif assessments:
                print("\n".join(format_assessment(a) for a in assessments))
            else:
                print("No likely duplicates found.")
            return

        if args.pair:
            match = asyncio.run(run_pair_analysis(detector, records, *args.pair))
            print(json.dumps(match.to_dict(), indent=2) if args.json else format_match(1, match))
            return

        overrides = {"duplicate_threshold": args.threshold} if args.threshold is not None else None
        result = asyncio.run(run_detection(detector, records, overrides=overrides))
    except DedupeError as e:
        logger.error("duplicate_detection_failed", error=str(e))
        print(f"Error: {e}")
        sys.exit(1)

    if args.json:
        payload = result.model_dump(mode="json", exclude={"matches"})
        payload["matches"] = [m.to_dict() for m in result.matches]
        print(json.dumps(payload, indent=2))
    else:
        print(format_result(result))


if __name__ == "__main__":
    main()
