"""Keyword-based transcript analysis for voice edits.

Cheap, deterministic signals only: themes and per-field hints steer the
prompt, they do not constrain the model's output.
"""

import re
from typing import Any

from cardgen.core.field_schemas import load_fields, normalize_schema_type
from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import FieldSpec, VoiceAnalysis

logger = get_logger(__name__)

DEFAULT_THEME = "general strategy"

# theme -> trigger words (matched at a word start, case-insensitive)
BUSINESS_THEMES: dict[str, tuple[str, ...]] = {
    "strategy": ("strategy", "strategic", "vision", "direction"),
    "goal": ("goal", "aim", "target"),
    "objective": ("objective", "okr", "outcome"),
    "user": ("user", "end user", "people using"),
    "customer": ("customer", "client", "buyer", "retention"),
    "problem": ("problem", "issue", "pain", "broken"),
    "solution": ("solution", "solve", "fix", "approach"),
    "value": ("value", "worth", "roi"),
    "benefit": ("benefit", "gain", "advantage", "improve"),
    "challenge": ("challenge", "churn", "struggle", "difficult", "obstacle", "reduce"),
    "opportunity": ("opportunit", "growth", "untapped", "potential"),
    "risk": ("risk", "threat", "concern", "danger"),
}

SCHEMA_THEMES: dict[str, dict[str, tuple[str, ...]]] = {
    "features": {
        "feature": ("feature", "functionality", "capability"),
        "requirement": ("requirement", "must have", "acceptance"),
        "user story": ("user story", "as a user", "so that"),
    },
    "personas": {
        "persona": ("persona", "archetype", "profile"),
        "behavior": ("behavio", "habit", "routine"),
        "motivation": ("motivat", "want", "need"),
    },
    "epics": {
        "delivery": ("milestone", "deliver", "release", "roadmap"),
    },
    "kpis": {
        "measurement": ("metric", "measure", "kpi", "percent", "rate"),
    },
    "workstreams": {
        "execution": ("team", "resource", "timeline", "milestone"),
    },
    "strategicContext": {
        "market": ("market", "competitor", "trend", "landscape"),
    },
}

# (trigger words, candidate fields, guidance)
FIELD_HINT_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...], str], ...] = (
    (
        ("goal", "objective", "aim", "achieve", "outcome"),
        ("goals", "objective", "objectiveAlignment", "outcomes", "strategicAlignment"),
        "speaker states goals or intended outcomes",
    ),
    (
        ("problem", "issue", "pain", "churn", "frustrat", "struggle"),
        ("problemItSolves", "painPoints", "coreProblem", "rootCause", "description"),
        "speaker describes a problem to address",
    ),
    (
        ("customer", "user", "persona", "client", "audience"),
        ("linkedPersona", "whoIsAffected", "demographics", "description"),
        "speaker names who is affected",
    ),
    (
        ("risk", "threat", "concern", "danger", "worry"),
        ("risks", "constraints", "deliveryConstraints"),
        "speaker raises risks or constraints",
    ),
    (
        ("metric", "measure", "kpi", "percent", "increase", "reduce"),
        ("successCriteria", "acceptanceCriteria", "target", "definition"),
        "speaker implies a measurable target",
    ),
    (
        ("priority", "urgent", "critical", "must", "first"),
        ("priorityLevel",),
        "speaker signals priority",
    ),
    (
        ("depend", "integrat", "blocked", "prerequisite"),
        ("dependencies",),
        "speaker mentions dependencies",
    ),
    (
        ("opportunit", "growth", "market", "trend"),
        ("opportunities", "marketContext", "keyTrends"),
        "speaker points to market opportunities",
    ),
    (
        ("strategy", "strategic", "align", "vision", "focus"),
        ("strategicAlignment",),
        "speaker ties this to strategic focus",
    ),
)

COMMON_FIELDS = ("description", "strategicAlignment", "tags")

TRANSCRIPT_PREVIEW_CHARS = 100


def _mentions(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}", text) is not None


def analyze_themes(transcript: str, schema_type: str) -> list[str]:
    """
    Scan a transcript for business themes.

    Args:
        transcript: Raw spoken transcript
        schema_type: UI or storage blueprint identifier

    Returns:
        Matched themes in vocabulary order, or ["general strategy"]
    """
    text = transcript.lower()
    vocabulary = dict(BUSINESS_THEMES)
    vocabulary.update(SCHEMA_THEMES.get(normalize_schema_type(schema_type), {}))

    themes = [
        theme for theme, triggers in vocabulary.items()
        if any(_mentions(text, trigger) for trigger in triggers)
    ]
    return themes or [DEFAULT_THEME]


def map_fields(
    transcript: str,
    schema_type: str,
    existing_fields: dict[str, Any],
    fields: list[FieldSpec] | None = None,
) -> dict[str, str]:
    """
    Map transcript keywords to hints for the fields they likely affect.

    Only fields that belong to the blueprint contract, the existing values or
    the common card fields receive hints. Pass ``fields`` to filter against
    the same contract the prompt is built from.
    """
    text = transcript.lower()
    contract = fields if fields is not None else load_fields(schema_type)
    known_fields = {spec.id for spec in contract}
    known_fields.update(existing_fields)
    known_fields.update(COMMON_FIELDS)

    hints: dict[str, list[str]] = {}
    for triggers, candidates, guidance in FIELD_HINT_RULES:
        matched = [t for t in triggers if _mentions(text, t)]
        if not matched:
            continue
        for field_id in candidates:
            if field_id in known_fields:
                hints.setdefault(field_id, []).append(f"{guidance} ({', '.join(matched)})")

    return {field_id: "; ".join(notes) for field_id, notes in hints.items()}


def build_summary(transcript: str, themes: list[str], scope_id: str | None) -> str:
    """Assemble the voice context block placed ahead of the generation prompt."""
    lines = [
        "VOICE INPUT CONTEXT",
        f"Key themes: {', '.join(themes)}",
        "Transcript:",
        f'"{transcript}"',
    ]
    if scope_id:
        lines.append(f"Active strategy: {scope_id}")
    lines.append(
        "The transcript is the primary strategic input for this card. "
        "Every field it touches must reflect what the speaker said."
    )
    return "\n".join(lines)


def analyze_transcript(
    transcript: str,
    schema_type: str,
    existing_fields: dict[str, Any],
    scope_id: str | None = None,
    fields: list[FieldSpec] | None = None,
) -> VoiceAnalysis:
    themes = analyze_themes(transcript, schema_type)
    field_hints = map_fields(transcript, schema_type, existing_fields, fields)
    logger.info(
        f"Voice analysis: {len(themes)} themes, {len(field_hints)} field hints",
        extra={"themes": themes, "transcript_preview": transcript[:TRANSCRIPT_PREVIEW_CHARS]},
    )
    return VoiceAnalysis(
        themes=themes,
        field_hints=field_hints,
        summary=build_summary(transcript, themes, scope_id),
    )
