"""Candidate pair enumeration."""

from collections.abc import Callable, Iterable, Iterator

from property_dedupe.logging import get_logger
from property_dedupe.models import PairKey, PropertyRecord

logger = get_logger(__name__)

EligibilityPredicate = Callable[[PropertyRecord], bool]


def is_active(record: PropertyRecord) -> bool:
    """Default eligibility: only active listings are compared."""
    return record.is_active


def eligible_records(
    records: Iterable[PropertyRecord],
    is_eligible: EligibilityPredicate = is_active,
) -> list[PropertyRecord]:
    """Filter records by eligibility and drop repeated ids.

    The first occurrence of an id wins, so input order stays stable.

    Args:
        records: Portfolio records in any order.
        is_eligible: Predicate deciding whether a record takes part.

    Returns:
        Eligible records with unique ids, in input order.
    """
    seen_ids: set[str] = set()
    result: list[PropertyRecord] = []
    skipped = 0
    for record in records:
        if not is_eligible(record):
            skipped += 1
            continue
        if record.id in seen_ids:
            logger.debug("duplicate_record_id_ignored", record_id=record.id)
            continue
        seen_ids.add(record.id)
        result.append(record)

    if skipped:
        logger.debug("ineligible_records_skipped", count=skipped)
    return result


def enumerate_pairs(
    records: Iterable[PropertyRecord],
    is_eligible: EligibilityPredicate = is_active,
) -> Iterator[tuple[PairKey, PropertyRecord, PropertyRecord]]:
    """Lazily yield every unordered pair of eligible records once.

    Pairs are produced in i < j order over the eligible records. Each pair
    is yielded with its records in PairKey order, so ``(A, B)`` and
    ``(B, A)`` produce identical output.

    Args:
        records: Portfolio records.
        is_eligible: Predicate deciding whether a record takes part.

    Yields:
        (pair_key, first_record, second_record) tuples.
    """
    return iter_pairs(eligible_records(records, is_eligible))


def iter_pairs(
    candidates: list[PropertyRecord],
) -> Iterator[tuple[PairKey, PropertyRecord, PropertyRecord]]:
    """Yield each unordered pair of already-filtered candidates once."""
    processed: set[PairKey] = set()

    for i in range(len(candidates)):
        for j in range(i + 1, len(candidates)):
            a, b = candidates[i], candidates[j]
            if a.id == b.id:
                continue
            key = PairKey.of(a.id, b.id)
            if key in processed:
                continue
            processed.add(key)
            if a.id == key.first:
                yield key, a, b
            else:
                yield key, b, a


def count_pairs(n: int) -> int:
    """Number of unordered pairs among ``n`` records."""
    return n * (n - 1) // 2 if n > 1 else 0
