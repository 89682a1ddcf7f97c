"""Deep duplicate analysis using an external LLM oracle.

The adapter never lets a single pair's oracle failure escape: timeouts, API
errors and malformed responses all resolve to a fixed conservative fallback
verdict so the rest of the run carries on.
"""

import asyncio
import json
import math
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Final, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from property_dedupe.errors import OracleResponseError
from property_dedupe.logging import get_logger
from property_dedupe.matching.prompts import (
    DUPLICATE_ANALYSIS_SYSTEM_PROMPT,
    build_comparison_prompt,
)
from property_dedupe.models import (
    DeepAnalysisVerdict,
    PropertyRecord,
    PropertySummary,
    Recommendation,
)

if TYPE_CHECKING:
    import anthropic

logger = get_logger(__name__)

DEFAULT_MODEL: Final = "claude-sonnet-4-5-20250929"

# SDK retry configuration
MAX_RETRIES: Final = 2
REQUEST_TIMEOUT: Final = 60.0

# Circuit breaker: stop calling the oracle after consecutive outage-indicating errors
_CIRCUIT_BREAKER_THRESHOLD: Final = 3
_CIRCUIT_BREAKER_COOLDOWN: Final = 60  # seconds

FALLBACK_SIMILARITY: Final = 50
FALLBACK_CONFIDENCE: Final = 30
FALLBACK_REASON: Final = "Deep analysis failed - fell back to basic analysis"
FALLBACK_EXPLANATION: Final = (
    "The deep analysis could not be completed. "
    "This pair passed the basic similarity check and needs manual review."
)
NOT_CONFIGURED_EXPLANATION: Final = (
    "Deep analysis is not configured. "
    "This pair passed the basic similarity check and needs manual review."
)
DEFAULT_EXPLANATION: Final = "No explanation provided"

VERDICT_TOOL_NAME: Final = "duplicate_verdict"


class DuplicateOracle(Protocol):
    """External semantic comparison service for two property summaries."""

    async def compare(
        self, first: PropertySummary, second: PropertySummary
    ) -> Mapping[str, Any]: ...


class _VerdictResponse(BaseModel):
    """Tool response: duplicate verdict for two listings."""

    model_config = ConfigDict(extra="forbid")

    similarity_score: int = Field(description="Overall similarity of the two listings, 0-100")
    confidence: int = Field(description="Confidence in this judgement, 0-100")
    reasons: list[str] = Field(description="Concrete observations supporting the verdict")
    explanation: str = Field(description="Short summary of the analysis")
    recommendation: Literal["merge", "review", "dismiss"]


def _build_tool_schema(name: str, description: str, model: type[BaseModel]) -> dict[str, Any]:
    """Build an Anthropic tool schema from a flat Pydantic model class."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.pop("description", None)
    schema["properties"] = {
        key: {k: v for k, v in prop.items() if k != "title"}
        for key, prop in schema.get("properties", {}).items()
    }
    return {
        "name": name,
        "description": description,
        "input_schema": schema,
    }


VERDICT_TOOL: Final[dict[str, Any]] = _build_tool_schema(
    VERDICT_TOOL_NAME,
    "Return the duplicate verdict for the two property listings",
    _VerdictResponse,
)


def fallback_verdict(explanation: str = FALLBACK_EXPLANATION) -> DeepAnalysisVerdict:
    """Conservative verdict used whenever the oracle cannot give a usable answer."""
    return DeepAnalysisVerdict(
        similarity_score=FALLBACK_SIMILARITY,
        confidence=FALLBACK_CONFIDENCE,
        reasons=(FALLBACK_REASON,),
        explanation=explanation,
        recommendation=Recommendation.REVIEW,
        is_fallback=True,
    )


def _parse_score(raw: Mapping[str, Any], key: str) -> float:
    value = raw.get(key)
    if value is None or isinstance(value, bool):
        raise OracleResponseError(f"Missing or invalid {key}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise OracleResponseError(f"Non-numeric {key}: {value!r}") from e
    if math.isnan(number):
        raise OracleResponseError(f"Non-numeric {key}: {value!r}")
    return min(100.0, max(0.0, number))


def _parse_reasons(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        s = value.strip()
        # LLMs sometimes return the list JSON-encoded
        if s.startswith("[") and s.endswith("]"):
            try:
                value = json.loads(s)
            except ValueError:
                return (s,)
        else:
            return (s,) if s else ()
    if not isinstance(value, list | tuple):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def parse_verdict(raw: Any) -> DeepAnalysisVerdict:
    """Parse a raw oracle response into a validated verdict.

    Scores are clamped into [0, 100]; an unknown recommendation becomes
    ``review``.

    Args:
        raw: Tool input returned by the oracle.

    Returns:
        Validated DeepAnalysisVerdict.

    Raises:
        OracleResponseError: If the response is not a mapping or lacks numeric scores.
    """
    if not isinstance(raw, Mapping):
        raise OracleResponseError(f"Expected an object, got {type(raw).__name__}")

    explanation = raw.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = DEFAULT_EXPLANATION

    return DeepAnalysisVerdict(
        similarity_score=_parse_score(raw, "similarity_score"),
        confidence=_parse_score(raw, "confidence"),
        reasons=_parse_reasons(raw.get("reasons")),
        explanation=explanation.strip(),
        recommendation=Recommendation.parse(raw.get("recommendation")),
    )


class ClaudeDuplicateOracle:
    """Compare two listings using Claude with a forced tool call."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the oracle.

        Args:
            api_key: Anthropic API key.
            model: Model name used for the comparison.
            max_tokens: Response token limit.
            timeout: HTTP timeout per request in seconds.
        """
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client: anthropic.AsyncAnthropic | None = None

    def _get_client(self) -> "anthropic.AsyncAnthropic":
        """Get or create the Anthropic client."""
        if self._client is None:
            import anthropic as _anthropic
            import httpx

            self._client = _anthropic.AsyncAnthropic(
                api_key=self._api_key,
                max_retries=MAX_RETRIES,  # SDK handles retry with exponential backoff
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def compare(self, first: PropertySummary, second: PropertySummary) -> dict[str, Any]:
        """Ask Claude for a duplicate verdict.

        Raises:
            OracleResponseError: If the response contains no tool call.
            anthropic.APIError: On API failures (after SDK retries).
        """
        from anthropic.types import ToolParam, ToolUseBlock

        client = self._get_client()
        verdict_tool: ToolParam = VERDICT_TOOL  # type: ignore[assignment]

        response = await client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=0.3,
            system=[
                {
                    "type": "text",
                    "text": DUPLICATE_ANALYSIS_SYSTEM_PROMPT,
                    "cache_control": {"type": "ephemeral"},
                }
            ],
            messages=[{"role": "user", "content": build_comparison_prompt(first, second)}],
            tools=[verdict_tool],
            tool_choice={"type": "tool", "name": VERDICT_TOOL_NAME},
        )

        tool_use_block = next(
            (block for block in response.content if isinstance(block, ToolUseBlock)),
            None,
        )
        if tool_use_block is None:
            raise OracleResponseError(
                f"No tool use in response (stop_reason={response.stop_reason})"
            )
        if not isinstance(tool_use_block.input, dict):
            raise OracleResponseError("Tool input is not an object")
        return tool_use_block.input

    async def close(self) -> None:
        """Close the client."""
        if self._client is not None:
            await self._client.close()
            self._client = None


class DeepAnalysisAdapter:
    """Run-scoped wrapper around a DuplicateOracle.

    Adds a per-call timeout, response validation, the fallback verdict and a
    circuit breaker. Create one per detection run so breaker state never
    leaks between runs.
    """

    def __init__(
        self,
        oracle: DuplicateOracle | None,
        *,
        timeout: float = REQUEST_TIMEOUT,
        failure_threshold: int = _CIRCUIT_BREAKER_THRESHOLD,
        cooldown_seconds: float = _CIRCUIT_BREAKER_COOLDOWN,
    ) -> None:
        self._oracle = oracle
        self._timeout = timeout
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        # asyncio is single-threaded, no lock needed
        self._consecutive_failures = 0
        self._circuit_opened_at: float | None = None

    @property
    def enabled(self) -> bool:
        return self._oracle is not None

    @property
    def circuit_open(self) -> bool:
        return self._circuit_opened_at is not None

    def _record_failure(self) -> None:
        """Record a consecutive failure and open the circuit if threshold reached."""
        self._consecutive_failures += 1
        if self._consecutive_failures >= self._failure_threshold:
            if not self.circuit_open:
                logger.warning(
                    "circuit_breaker_open",
                    consecutive_failures=self._consecutive_failures,
                )
            # A failed half-open attempt restarts the cooldown
            self._circuit_opened_at = time.monotonic()

    def _record_success(self) -> None:
        """Reset failure counter and close circuit if it was open."""
        if self.circuit_open:
            logger.info("circuit_breaker_closed")
        self._consecutive_failures = 0
        self._circuit_opened_at = None

    def _is_circuit_open(self) -> bool:
        """Check if the circuit is open, allowing a retry after the cooldown."""
        if self._circuit_opened_at is None:
            return False
        elapsed = time.monotonic() - self._circuit_opened_at
        if elapsed >= self._cooldown_seconds:
            logger.info(
                "circuit_breaker_half_open",
                cooldown_seconds=self._cooldown_seconds,
                elapsed_seconds=round(elapsed, 1),
            )
            return False
        return True

    async def analyze(self, first: PropertyRecord, second: PropertyRecord) -> DeepAnalysisVerdict:
        """Get a verdict for one pair; never raises for oracle problems.

        Args:
            first: First record of the pair.
            second: Second record of the pair.

        Returns:
            Parsed oracle verdict, or the fallback verdict.
        """
        if self._oracle is None:
            return fallback_verdict(NOT_CONFIGURED_EXPLANATION)

        if self._is_circuit_open():
            logger.warning(
                "deep_analysis_fallback",
                first_id=first.id,
                second_id=second.id,
                reason="circuit_open",
            )
            return fallback_verdict()

        try:
            raw = await asyncio.wait_for(
                self._oracle.compare(
                    PropertySummary.from_record(first), PropertySummary.from_record(second)
                ),
                timeout=self._timeout,
            )
            verdict = parse_verdict(raw)
        except TimeoutError:
            self._record_failure()
            logger.warning(
                "deep_analysis_fallback",
                first_id=first.id,
                second_id=second.id,
                reason="timeout",
                timeout_seconds=self._timeout,
            )
            return fallback_verdict()
        except OracleResponseError as e:
            logger.warning(
                "deep_analysis_fallback",
                first_id=first.id,
                second_id=second.id,
                reason="malformed_response",
                error=str(e),
            )
            return fallback_verdict()
        except Exception as e:
            self._record_failure()
            logger.warning(
                "deep_analysis_fallback",
                first_id=first.id,
                second_id=second.id,
                reason="oracle_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return fallback_verdict()

        self._record_success()
        logger.debug(
            "deep_analysis_complete",
            first_id=first.id,
            second_id=second.id,
            similarity_score=verdict.similarity_score,
            confidence=verdict.confidence,
            recommendation=verdict.recommendation.value,
        )
        return verdict
