"""Tests for haversine distance and location proximity scoring."""

from collections.abc import Callable

import pytest

from property_dedupe.matching.geo import (
    haversine_distance,
    location_proximity_score,
    record_distance,
)
from property_dedupe.models import PropertyRecord

BERLIN = (52.5200, 13.4050)
MUNICH = (48.1351, 11.5820)


class TestHaversineDistance:
    def test_identical_coordinates(self) -> None:
        assert haversine_distance(*BERLIN, *BERLIN) == 0

    def test_berlin_to_munich(self) -> None:
        distance = haversine_distance(*BERLIN, *MUNICH)
        assert 500_000 < distance < 600_000

    def test_symmetric(self) -> None:
        assert haversine_distance(*BERLIN, *MUNICH) == pytest.approx(
            haversine_distance(*MUNICH, *BERLIN)
        )

    def test_short_distance(self) -> None:
        # 0.001 degrees of latitude is roughly 111 meters
        distance = haversine_distance(52.5200, 13.4050, 52.5210, 13.4050)
        assert distance == pytest.approx(111, abs=2)


class TestRecordDistance:
    def test_both_have_coordinates(self, make_record: Callable[..., PropertyRecord]) -> None:
        a = make_record("a")
        b = make_record("b")
        assert record_distance(a, b) == 0

    def test_missing_coordinates(self, make_record: Callable[..., PropertyRecord]) -> None:
        a = make_record("a")
        b = make_record("b", latitude=None, longitude=None)
        assert record_distance(a, b) is None


class TestLocationProximityScore:
    def test_within_tolerance(self, make_record: Callable[..., PropertyRecord]) -> None:
        a = make_record("a", latitude=52.5200, longitude=13.4050)
        b = make_record("b", latitude=52.5202, longitude=13.4050)
        score = location_proximity_score(a, b, tolerance_meters=50, max_meters=1000)
        assert score.score == 100
        assert score.evaluated

    def test_decays_with_distance(self, make_record: Callable[..., PropertyRecord]) -> None:
        a = make_record("a", latitude=52.5200, longitude=13.4050)
        b = make_record("b", latitude=52.5245, longitude=13.4050)  # ~500 m
        score = location_proximity_score(a, b, tolerance_meters=50, max_meters=1000)
        assert 40 < score.score < 60

    def test_zero_beyond_max(self, make_record: Callable[..., PropertyRecord]) -> None:
        a = make_record("a", latitude=BERLIN[0], longitude=BERLIN[1])
        b = make_record("b", latitude=MUNICH[0], longitude=MUNICH[1])
        score = location_proximity_score(a, b, tolerance_meters=50, max_meters=1000)
        assert score.score == 0
        assert score.evaluated

    def test_not_evaluated_without_coordinates(
        self, make_record: Callable[..., PropertyRecord]
    ) -> None:
        a = make_record("a")
        b = make_record("b", latitude=None, longitude=None)
        score = location_proximity_score(a, b, tolerance_meters=50, max_meters=1000)
        assert not score.evaluated
        assert score.score == 0
