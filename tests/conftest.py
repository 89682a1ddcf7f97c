"""Shared pytest fixtures."""

import os
from collections.abc import Callable
from typing import Any

import pytest
from hypothesis import HealthCheck, settings

from property_dedupe.config import DetectionConfig, Settings
from property_dedupe.models import PropertyRecord

# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=10)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file and shell env from leaking into test Settings."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )
    for key in list(os.environ):
        if key.startswith("PROPERTY_DEDUPE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config() -> DetectionConfig:
    return DetectionConfig()


@pytest.fixture
def make_record() -> Callable[..., PropertyRecord]:
    """Factory for property records with sensible Berlin defaults."""

    def _make(record_id: str = "prop-1", **overrides: Any) -> PropertyRecord:
        defaults: dict[str, Any] = {
            "id": record_id,
            "title": "Bright 2-room apartment in Mitte",
            "description": "Renovated flat with balcony close to the park.",
            "street_name": "Torstraße",
            "street_number": "12",
            "city": "Berlin",
            "zip_code": "10119",
            "latitude": 52.5291,
            "longitude": 13.4010,
            "monthly_rent": 1450.0,
            "bedrooms": 2,
            "bathrooms": 1,
            "square_meters": 68.0,
            "owner_id": "owner-1",
        }
        defaults.update(overrides)
        return PropertyRecord(**defaults)

    return _make


@pytest.fixture
def duplicate_pair(
    make_record: Callable[..., PropertyRecord],
) -> tuple[PropertyRecord, PropertyRecord]:
    """Same flat listed twice: identical address, near-identical rent, reworded title."""
    first = make_record("prop-a", title="Sunny flat near Rosenthaler Platz")
    second = make_record(
        "prop-b",
        title="Bright apartment in Mitte with balcony",
        street_name="Torstr.",
        monthly_rent=1480.0,
    )
    return first, second


@pytest.fixture
def unrelated_record(make_record: Callable[..., PropertyRecord]) -> PropertyRecord:
    return make_record(
        "prop-z",
        title="Family house with garden",
        street_name="Gartenweg",
        street_number="3",
        city="Potsdam",
        zip_code="14469",
        latitude=52.4009,
        longitude=13.0591,
        monthly_rent=2900.0,
        bedrooms=4,
        square_meters=140.0,
    )
