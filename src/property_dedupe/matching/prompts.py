"""System prompt and prompt builder for deep duplicate analysis."""

from typing import Final

from property_dedupe.models import PropertySummary

DUPLICATE_ANALYSIS_SYSTEM_PROMPT: Final = """\
You are an expert in detecting duplicate real-estate listings. You compare \
two property entries from the same landlord's portfolio and decide whether \
they describe the same real-world property.

<task>
Analyze both listings based on:
1. Address agreement (exact, similar or different)
2. Semantic similarity of titles and descriptions, including translations \
and rewordings of the same text
3. Agreement of the property attributes (size, rooms, rent)
4. The likelihood that the same property was entered twice, for example \
through a repeated import or a manual re-entry with small edits
</task>

<scoring>
- similarity_score: 0-100, how alike the two listings are overall
- confidence: 0-100, how certain you are in your judgement
- reasons: short, concrete observations supporting the judgement
- explanation: two or three sentences summarising the analysis
</scoring>

<recommendation>
- merge: more than 95% certain the listings are duplicates
- review: 85-95% certain, probably duplicates but a human should check
- dismiss: below 85%, probably different properties
</recommendation>

Missing fields are not evidence either way. Do not guess values that are \
not present in the listings."""


def _format_value(value: object, suffix: str = "") -> str:
    if value is None or value == "":
        return "not specified"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}{suffix}"


def _format_summary(label: str, summary: PropertySummary) -> str:
    lines = [
        f'<property label="{label}" id="{summary.id}">',
        f"Title: {summary.title or 'not specified'}",
        f"Description: {summary.description or 'no description'}",
        f"Address: {summary.address}",
        f"Monthly rent: {_format_value(summary.monthly_rent, ' EUR')}",
        f"Bedrooms: {_format_value(summary.bedrooms)}",
        f"Bathrooms: {_format_value(summary.bathrooms)}",
        f"Floor area: {_format_value(summary.square_meters, ' m2')}",
        "</property>",
    ]
    return "\n".join(lines)


def build_comparison_prompt(first: PropertySummary, second: PropertySummary) -> str:
    """Build the user prompt comparing two property summaries."""
    prompt = _format_summary("A", first)
    prompt += "\n\n"
    prompt += _format_summary("B", second)
    prompt += "\n\nProvide your verdict using the duplicate_verdict tool."
    return prompt
