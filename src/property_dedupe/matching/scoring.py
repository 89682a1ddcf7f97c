"""Pure scoring functions for duplicate-property matching.

Every field scorer returns a ``FieldScore``: a 0-100 sub-score plus the
maximum achievable for the pair. A dimension neither record can supply is
reported as not evaluated so the basic score can leave it out of the
denominator instead of counting it as a mismatch.
"""

import re
from typing import Final

from rapidfuzz import fuzz

from property_dedupe.config import DetectionConfig
from property_dedupe.matching.geo import location_proximity_score
from property_dedupe.models import FieldScore, PropertyRecord, ScoreBreakdown
from property_dedupe.utils.address import (
    normalize_city,
    normalize_street_name,
    normalize_street_number,
    normalize_zip_code,
)

# Address points (additive)
SCORE_STREET_NAME: Final = 20
SCORE_STREET_NUMBER: Final = 10
SCORE_ZIP_CODE: Final = 40
SCORE_CITY: Final = 30

# Area decay mirrors the default price curve
AREA_DECAY_PERCENT: Final = 50

# Points lost per differing bedroom
ROOM_DIFFERENCE_PENALTY: Final = 25

_PUNCTUATION: Final = re.compile(r"[^\w\s]")


def _normalize_title(title: str) -> str:
    return " ".join(_PUNCTUATION.sub("", title.lower()).split())


def title_similarity(title1: str | None, title2: str | None) -> FieldScore:
    """Fuzzy character-level similarity between two titles.

    Args:
        title1: First title.
        title2: Second title.

    Returns:
        FieldScore with 100 for identical titles; not evaluated when either is empty.
    """
    norm1 = _normalize_title(title1 or "")
    norm2 = _normalize_title(title2 or "")
    if not norm1 or not norm2:
        return FieldScore.not_evaluated()
    if norm1 == norm2:
        return FieldScore(100.0, 100.0)
    return FieldScore(float(fuzz.ratio(norm1, norm2)), 100.0)


def address_match(prop1: PropertyRecord, prop2: PropertyRecord) -> FieldScore:
    """Additive address score normalized by the points both records could earn.

    Street name earns 20 points, plus 10 if the street number matches too.
    Zip code earns 40 and city 30. A part (street number included) only
    counts towards the maximum when both records provide it.

    Args:
        prop1: First property.
        prop2: Second property.

    Returns:
        FieldScore scaled to 0-100; not evaluated if no address part is shared.
    """
    earned = 0
    max_possible = 0

    street1 = normalize_street_name(prop1.street_name)
    street2 = normalize_street_name(prop2.street_name)
    if street1 and street2:
        max_possible += SCORE_STREET_NAME
        number1 = normalize_street_number(prop1.street_number)
        number2 = normalize_street_number(prop2.street_number)
        if number1 and number2:
            max_possible += SCORE_STREET_NUMBER
        if street1 == street2:
            earned += SCORE_STREET_NAME
            if number1 and number1 == number2:
                earned += SCORE_STREET_NUMBER

    zip1 = normalize_zip_code(prop1.zip_code)
    zip2 = normalize_zip_code(prop2.zip_code)
    if zip1 and zip2:
        max_possible += SCORE_ZIP_CODE
        if zip1 == zip2:
            earned += SCORE_ZIP_CODE

    city1 = normalize_city(prop1.city)
    city2 = normalize_city(prop2.city)
    if city1 and city2:
        max_possible += SCORE_CITY
        if city1 == city2:
            earned += SCORE_CITY

    if max_possible == 0:
        return FieldScore.not_evaluated()
    return FieldScore(earned / max_possible * 100.0, 100.0)


def graduated_tolerance_score(
    value1: float | None,
    value2: float | None,
    *,
    tolerance_percent: float,
    decay_percent: float,
) -> FieldScore:
    """Graduated proximity score for two positive quantities.

    The relative difference is ``|a - b| / max(a, b)``. Within
    ``tolerance_percent`` the score is 100; beyond it the score falls
    linearly and reaches 0 at ``decay_percent``.

    Args:
        value1: First quantity.
        value2: Second quantity.
        tolerance_percent: Relative difference still treated as equal.
        decay_percent: Relative difference at which the score reaches 0.

    Returns:
        FieldScore; not evaluated if either value is missing or non-positive.
    """
    if not value1 or not value2 or value1 <= 0 or value2 <= 0:
        return FieldScore.not_evaluated()

    relative = abs(value1 - value2) / max(value1, value2)
    tolerance = tolerance_percent / 100
    decay = decay_percent / 100

    if relative <= tolerance:
        return FieldScore(100.0, 100.0)
    if relative >= decay:
        return FieldScore(0.0, 100.0)
    return FieldScore(100.0 * (decay - relative) / (decay - tolerance), 100.0)


def price_match(
    price1: float | None,
    price2: float | None,
    *,
    tolerance_percent: float = 5,
    decay_percent: float = 50,
) -> FieldScore:
    """Compare monthly rents (see ``graduated_tolerance_score``)."""
    return graduated_tolerance_score(
        price1, price2, tolerance_percent=tolerance_percent, decay_percent=decay_percent
    )


def area_match(
    area1: float | None, area2: float | None, *, tolerance_percent: float = 5
) -> FieldScore:
    """Compare floor areas with the same curve as prices."""
    return graduated_tolerance_score(
        area1, area2, tolerance_percent=tolerance_percent, decay_percent=AREA_DECAY_PERCENT
    )


def rooms_match(prop1: PropertyRecord, prop2: PropertyRecord) -> FieldScore:
    """Bedroom count agreement: 100 when equal, minus 25 per differing room."""
    if prop1.bedrooms is None or prop2.bedrooms is None:
        return FieldScore.not_evaluated()
    difference = abs(prop1.bedrooms - prop2.bedrooms)
    return FieldScore(max(0.0, 100.0 - difference * ROOM_DIFFERENCE_PENALTY), 100.0)


def calculate_basic_score(
    prop1: PropertyRecord,
    prop2: PropertyRecord,
    config: DetectionConfig,
) -> ScoreBreakdown:
    """Calculate the weighted basic score between two properties.

    Dimensions with zero weight are skipped entirely. Dimensions that could
    not be evaluated for this pair are excluded from the weight total.

    Args:
        prop1: First property.
        prop2: Second property.
        config: Weights and tolerances.

    Returns:
        ScoreBreakdown with every sub-score and the clamped basic score.
    """
    title = title_similarity(prop1.title, prop2.title)
    address = address_match(prop1, prop2)
    price = price_match(
        prop1.monthly_rent,
        prop2.monthly_rent,
        tolerance_percent=config.price_tolerance_percent,
        decay_percent=config.price_decay_percent,
    )

    dimensions: dict[str, tuple[FieldScore, float]] = {
        "title": (title, config.title_weight),
        "address": (address, config.address_weight),
        "price": (price, config.price_weight),
    }

    location: FieldScore | None = None
    if config.location_weight > 0:
        location = location_proximity_score(
            prop1,
            prop2,
            tolerance_meters=config.location_tolerance_meters,
            max_meters=config.location_max_meters,
        )
        dimensions["location"] = (location, config.location_weight)

    area: FieldScore | None = None
    if config.area_weight > 0:
        area = area_match(
            prop1.square_meters,
            prop2.square_meters,
            tolerance_percent=config.area_tolerance_percent,
        )
        dimensions["area"] = (area, config.area_weight)

    rooms: FieldScore | None = None
    if config.rooms_weight > 0:
        rooms = rooms_match(prop1, prop2)
        dimensions["rooms"] = (rooms, config.rooms_weight)

    weighted_sum = 0.0
    weight_total = 0.0
    evaluated: set[str] = set()
    for name, (field_score, weight) in dimensions.items():
        if weight <= 0 or not field_score.evaluated:
            continue
        evaluated.add(name)
        weighted_sum += field_score.score * weight
        weight_total += weight

    basic = weighted_sum / weight_total if weight_total > 0 else 0.0

    def _optional(fs: FieldScore | None) -> float | None:
        return fs.score if fs is not None and fs.evaluated else None

    return ScoreBreakdown(
        title=title.score,
        address=address.score,
        price=price.score,
        location=_optional(location),
        area=_optional(area),
        rooms=_optional(rooms),
        basic=min(100.0, max(0.0, basic)),
        evaluated=frozenset(evaluated),
    )
