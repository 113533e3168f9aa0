"""Prompt composition for card field generation. Pure functions, no I/O."""

import json
from dataclasses import dataclass
from typing import Any

from cardgen.core.field_merge import is_empty_value
from cardgen.core.schemas_generation import FieldSpec, VoiceAnalysis

# ruff: noqa: E501
COMMON_FIELDS_TRAILER = """Also include these common card fields:
- description: Clear description of this card (string)
- strategicAlignment: How this aligns with strategic objectives (string)
- tags: Array of relevant tags (array of strings)

Ensure all required fields are populated and follow the exact field names and types specified above.
Return exactly ONE JSON object whose keys are the field names above. No markdown, no commentary."""

CLOSING_INSTRUCTION = (
    "IMPORTANT: Follow the system prompt exactly and generate the specific fields requested. "
    "Return ONLY a JSON object with the exact field names specified in the system prompt as keys "
    "and appropriate content as values."
)

VOICE_SYSTEM_DIRECTIVE = """VOICE EDIT MODE:
The user has dictated changes to this card. Their transcript is the authoritative source of intent.
- Rewrite every field the transcript touches so it clearly reflects what was said.
- Returning the existing values unchanged is a failure, not a safe default.
- Keep fields the transcript does not touch consistent with the new direction."""


@dataclass(frozen=True)
class ComposedPrompt:
    system: str
    user: str


def format_field_contract(fields: list[FieldSpec]) -> str:
    """Render one line per field: id, name, shape, requirement, description, example."""
    lines = []
    for spec in fields:
        requirement = "[REQUIRED]" if spec.required else "[OPTIONAL]"
        about = spec.description or spec.placeholder or "No description"
        line = f"- {spec.id}: {spec.display_name} ({spec.json_type}) {requirement} - {about} - Example: {spec.example}"
        if spec.options:
            line += f" - Options: {' | '.join(spec.options)}"
        lines.append(line)
    return "\n".join(lines)


def build_system_prompt(template: str, fields: list[FieldSpec]) -> str:
    return f"""{template}

FIELD REQUIREMENTS:
Generate a JSON response with these specific fields:

{format_field_contract(fields)}

{COMMON_FIELDS_TRAILER}"""


def has_existing_content(existing_fields: dict[str, Any]) -> bool:
    return any(not is_empty_value(v) for v in existing_fields.values())


def build_user_prompt(
    schema_type: str,
    title: str,
    existing_fields: dict[str, Any],
    context_summary: str = "",
) -> str:
    """Standard-mode user prompt."""
    prompt = f'Generate content for a {schema_type} card titled "{title}".'

    if context_summary:
        prompt += f"\n\nRelevant Context:\n{context_summary}"

    if has_existing_content(existing_fields):
        prompt += (
            "\n\nExisting content to enhance (improve and expand, don't just repeat):\n"
            f"{json.dumps(existing_fields, indent=2, default=str)}"
        )
        prompt += (
            "\n\nInstructions:\n"
            "- Fill ALL empty fields with appropriate content\n"
            "- ENHANCE existing fields with more detail and specificity\n"
            "- Ensure all fields work together coherently"
        )
    else:
        prompt += (
            "\n\nGenerate comprehensive content for all fields. "
            "Be specific, actionable, and relevant to the card title."
        )

    prompt += f"\n\n{CLOSING_INSTRUCTION}"
    return prompt


def build_voice_system_prompt(template: str, fields: list[FieldSpec]) -> str:
    return f"{build_system_prompt(template, fields)}\n\n{VOICE_SYSTEM_DIRECTIVE}"


def build_voice_user_prompt(
    schema_type: str,
    title: str,
    transcript: str,
    analysis: VoiceAnalysis,
    existing_fields: dict[str, Any],
    context_summary: str = "",
) -> str:
    """Voice-mode user prompt: transcript first, then hints, then current values."""
    sections = [
        f'Update the {schema_type} card titled "{title}" based on the user\'s spoken instructions.',
        analysis.summary or f'Transcript:\n"{transcript}"',
    ]

    if transcript not in sections[1]:
        sections.append(f'Transcript:\n"{transcript}"')

    if analysis.field_hints:
        hints = "\n".join(f"- {field_id}: {hint}" for field_id, hint in analysis.field_hints.items())
        sections.append(f"Fields the transcript likely affects (signals, not rules):\n{hints}")

    if context_summary:
        sections.append(f"Relevant Context:\n{context_summary}")

    if has_existing_content(existing_fields):
        sections.append(
            "Current field values (these MUST change where the transcript applies):\n"
            f"{json.dumps(existing_fields, indent=2, default=str)}"
        )

    sections.append(
        "Instructions:\n"
        "- Make material changes that carry out what the speaker asked for\n"
        "- Echoing the transcript or the current values back unchanged is not acceptable\n"
        "- Fill any empty fields so the card is complete"
    )
    sections.append(CLOSING_INSTRUCTION)
    return "\n\n".join(sections)


def compose_standard(
    template: str,
    fields: list[FieldSpec],
    schema_type: str,
    title: str,
    existing_fields: dict[str, Any],
    context_summary: str = "",
) -> ComposedPrompt:
    return ComposedPrompt(
        system=build_system_prompt(template, fields),
        user=build_user_prompt(schema_type, title, existing_fields, context_summary),
    )


def compose_voice(
    template: str,
    fields: list[FieldSpec],
    schema_type: str,
    title: str,
    transcript: str,
    analysis: VoiceAnalysis,
    existing_fields: dict[str, Any],
    context_summary: str = "",
) -> ComposedPrompt:
    return ComposedPrompt(
        system=build_voice_system_prompt(template, fields),
        user=build_voice_user_prompt(
            schema_type, title, transcript, analysis, existing_fields, context_summary
        ),
    )
