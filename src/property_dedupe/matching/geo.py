"""Great-circle distance and coordinate proximity scoring."""

import math
from typing import Final

from property_dedupe.models import FieldScore, PropertyRecord

EARTH_RADIUS_METERS: Final = 6_371_000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two coordinates in meters.

    Args:
        lat1, lon1: First coordinate.
        lat2, lon2: Second coordinate.

    Returns:
        Distance in meters.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))

    return EARTH_RADIUS_METERS * c


def record_distance(prop1: PropertyRecord, prop2: PropertyRecord) -> float | None:
    """Distance between two records in meters, or None if either lacks coordinates."""
    if not (prop1.has_coordinates and prop2.has_coordinates):
        return None
    return haversine_distance(
        prop1.latitude,  # type: ignore[arg-type]
        prop1.longitude,  # type: ignore[arg-type]
        prop2.latitude,  # type: ignore[arg-type]
        prop2.longitude,  # type: ignore[arg-type]
    )


def location_proximity_score(
    prop1: PropertyRecord,
    prop2: PropertyRecord,
    *,
    tolerance_meters: float,
    max_meters: float,
) -> FieldScore:
    """Graduated coordinate proximity score.

    Returns 100 within ``tolerance_meters``, then decays linearly to 0 at
    ``max_meters``.

    Args:
        prop1: First property.
        prop2: Second property.
        tolerance_meters: Distance still treated as the same spot.
        max_meters: Distance at which the score reaches 0.

    Returns:
        FieldScore; not evaluated if either property lacks coordinates.
    """
    distance = record_distance(prop1, prop2)
    if distance is None:
        return FieldScore.not_evaluated()

    if distance <= tolerance_meters:
        return FieldScore(100.0, 100.0)
    return FieldScore(max(0.0, 100.0 - (distance / max_meters) * 100.0), 100.0)
