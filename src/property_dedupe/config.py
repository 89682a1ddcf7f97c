"""Detection and application configuration using pydantic-settings."""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DetectionConfig(BaseModel):
    """Weights, tolerances and thresholds for one detection run."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Basic score weights (relative; only evaluated dimensions count)
    title_weight: float = Field(default=10, ge=0)
    address_weight: float = Field(default=35, ge=0)
    price_weight: float = Field(default=10, ge=0)
    location_weight: float = Field(default=0, ge=0)
    area_weight: float = Field(default=0, ge=0)
    rooms_weight: float = Field(default=0, ge=0)

    # Tolerances
    price_tolerance_percent: float = Field(default=5, ge=0, le=100)
    price_decay_percent: float = Field(
        default=50,
        gt=0,
        le=100,
        description="Relative price difference at which the price score reaches 0",
    )
    area_tolerance_percent: float = Field(default=5, ge=0, le=100)
    location_tolerance_meters: float = Field(default=50, ge=0)
    location_max_meters: float = Field(default=1000, gt=0)

    # Funnel gate and acceptance thresholds
    duplicate_threshold: float = Field(default=70, ge=0, le=100)
    strong_match_threshold: float = Field(default=85, ge=0, le=100)
    min_confidence: float = Field(default=80, ge=0, le=100)
    min_similarity: float = Field(default=85, ge=0, le=100)

    @model_validator(mode="after")
    def check_weights(self) -> Self:
        """At least one of the core dimensions must carry weight."""
        if self.title_weight + self.address_weight + self.price_weight <= 0:
            raise ValueError("At least one of title, address or price weight must be positive")
        return self

    @model_validator(mode="after")
    def check_decay_bands(self) -> Self:
        """Decay bands must extend beyond their tolerance bands."""
        if self.price_decay_percent <= self.price_tolerance_percent:
            raise ValueError("price_decay_percent must be greater than price_tolerance_percent")
        if self.location_max_meters <= self.location_tolerance_meters:
            raise ValueError("location_max_meters must be greater than location_tolerance_meters")
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROPERTY_DEDUPE_",
        extra="ignore",
    )

    # Anthropic API (optional, needed for deep analysis)
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key for deep duplicate analysis",
    )
    enable_deep_analysis: bool = Field(
        default=True,
        description="Consult the LLM for pairs that pass the basic-score funnel",
    )
    oracle_model: str = Field(default="claude-sonnet-4-5-20250929")
    oracle_timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    max_concurrent_analyses: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum number of deep-analysis calls in flight",
    )

    # Detection thresholds
    duplicate_threshold: float = Field(default=70, ge=0, le=100)
    min_confidence: float = Field(default=80, ge=0, le=100)
    min_similarity: float = Field(default=85, ge=0, le=100)
    price_tolerance_percent: float = Field(default=5, ge=0, le=100)

    @property
    def deep_analysis_available(self) -> bool:
        """Whether an oracle can be built from these settings."""
        return self.enable_deep_analysis and bool(self.anthropic_api_key.get_secret_value())

    def get_detection_config(self) -> DetectionConfig:
        """Build DetectionConfig from settings."""
        return DetectionConfig(
            duplicate_threshold=self.duplicate_threshold,
            min_confidence=self.min_confidence,
            min_similarity=self.min_similarity,
            price_tolerance_percent=self.price_tolerance_percent,
        )
