"""Pydantic models for property records and duplicate matches."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PropertyStatus(StrEnum):
    """Lifecycle status of a listing."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Recommendation(StrEnum):
    """Action suggested for a duplicate candidate."""

    MERGE = "merge"
    REVIEW = "review"
    DISMISS = "dismiss"

    @classmethod
    def parse(cls, value: Any) -> "Recommendation":
        """Parse an oracle recommendation, defaulting to REVIEW for anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.REVIEW


class CandidateStatus(StrEnum):
    """Classification of a new record against an existing one."""

    DUPLICATE = "duplicate"
    POTENTIAL = "potential"
    UNIQUE = "unique"


class PropertyRecord(BaseModel):
    """A property listing as stored in the owner's portfolio."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str = ""
    description: str | None = None
    street_name: str | None = None
    street_number: str | None = None
    city: str | None = None
    zip_code: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    monthly_rent: float | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    square_meters: float | None = None
    owner_id: str = ""
    status: PropertyStatus = PropertyStatus.ACTIVE

    @field_validator("title", mode="before")
    @classmethod
    def coerce_title(cls, v: Any) -> Any:
        """Treat a missing title as empty."""
        return "" if v is None else v

    @field_validator(
        "description", "street_name", "street_number", "city", "zip_code", mode="before"
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Normalize blank strings to None and numbers to strings."""
        if isinstance(v, int | float) and not isinstance(v, bool):
            v = str(v)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_coordinates(self) -> Self:
        """Ensure both lat and lon are present or both are absent."""
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("Both latitude and longitude must be provided, or neither")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == PropertyStatus.ACTIVE

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def format_address(self) -> str:
        """Format the address for display."""
        street = " ".join(p for p in (self.street_name, self.street_number) if p)
        locality = " ".join(p for p in (self.zip_code, self.city) if p)
        return ", ".join(p for p in (street, locality) if p) or "Address not specified"


class PropertySummary(BaseModel):
    """The subset of a record sent to the deep-analysis oracle."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str | None = None
    address: str
    monthly_rent: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    square_meters: float | None = None
    owner_id: str = ""

    @classmethod
    def from_record(cls, record: PropertyRecord) -> Self:
        return cls(
            id=record.id,
            title=record.title,
            description=record.description,
            address=record.format_address(),
            monthly_rent=record.monthly_rent,
            bedrooms=record.bedrooms,
            bathrooms=record.bathrooms,
            square_meters=record.square_meters,
            owner_id=record.owner_id,
        )


@dataclass(frozen=True, order=True)
class PairKey:
    """Order-independent identifier of a candidate pair.

    Always construct via ``PairKey.of`` so that ``first <= second``.
    """

    first: str
    second: str

    @classmethod
    def of(cls, a: str, b: str) -> "PairKey":
        if a == b:
            raise ValueError(f"A record cannot be paired with itself: {a!r}")
        return cls(a, b) if a < b else cls(b, a)

    def __str__(self) -> str:
        return f"{self.first}|{self.second}"


@dataclass(frozen=True)
class FieldScore:
    """Sub-score for one comparison dimension.

    ``max_possible`` is 100 when both records supplied the data needed to
    compare this dimension, 0 when the dimension could not be evaluated.
    """

    score: float = 0.0
    max_possible: float = 0.0

    @property
    def evaluated(self) -> bool:
        return self.max_possible > 0

    @classmethod
    def not_evaluated(cls) -> "FieldScore":
        return cls(0.0, 0.0)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-dimension sub-scores plus the weighted basic score."""

    title: float = 0.0
    address: float = 0.0
    price: float = 0.0
    location: float | None = None
    area: float | None = None
    rooms: float | None = None
    basic: float = 0.0
    evaluated: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, float | list[str] | None]:
        """Convert to dict for logging and JSON output."""
        return {
            "title": round(self.title, 2),
            "address": round(self.address, 2),
            "price": round(self.price, 2),
            "location": None if self.location is None else round(self.location, 2),
            "area": None if self.area is None else round(self.area, 2),
            "rooms": None if self.rooms is None else round(self.rooms, 2),
            "basic": round(self.basic, 2),
            "evaluated": sorted(self.evaluated),
        }


class DeepAnalysisVerdict(BaseModel):
    """Validated verdict from the deep-analysis oracle (or the fallback)."""

    model_config = ConfigDict(frozen=True)

    similarity_score: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=100)
    reasons: tuple[str, ...] = ()
    explanation: str = ""
    recommendation: Recommendation = Recommendation.REVIEW
    is_fallback: bool = False


class DuplicateMatch(BaseModel):
    """A pair of records judged likely to describe the same listing."""

    model_config = ConfigDict(frozen=True)

    pair_key: PairKey
    record_a: PropertyRecord
    record_b: PropertyRecord
    breakdown: ScoreBreakdown
    similarity_score: float
    confidence: float
    reasons: tuple[str, ...] = ()
    explanation: str = ""
    recommendation: Recommendation
    ai_enhanced: bool

    @property
    def rank_score(self) -> float:
        return self.confidence + self.similarity_score

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used by the CLI."""
        return {
            "pair": [self.pair_key.first, self.pair_key.second],
            "titles": [self.record_a.title, self.record_b.title],
            "basic_score": round(self.breakdown.basic, 2),
            "breakdown": self.breakdown.to_dict(),
            "similarity_score": self.similarity_score,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "explanation": self.explanation,
            "recommendation": self.recommendation.value,
            "ai_enhanced": self.ai_enhanced,
        }


class DetectionResult(BaseModel):
    """Outcome of one detection run."""

    model_config = ConfigDict(frozen=True)

    run_id: str = ""
    matches: tuple[DuplicateMatch, ...] = ()
    total_considered: int = 0
    rejected_records: int = 0
    # An oracle was configured for the run; see fallback_count for how many
    # pairs actually got an oracle verdict
    ai_enhanced: bool = False
    pairs_enumerated: int = 0
    pairs_forwarded: int = 0
    fallback_count: int = 0
    skipped_count: int = 0
    cancelled: bool = False


class CandidateAssessment(BaseModel):
    """Cheap-score assessment of a new record against one existing record."""

    model_config = ConfigDict(frozen=True)

    existing: PropertyRecord
    breakdown: ScoreBreakdown
    status: CandidateStatus
    suggestion: str

    @property
    def match_score(self) -> int:
        return round(self.breakdown.basic)
