"""Typed field contracts per blueprint type.

The registry lives in ``cardgen/schemas/blueprints.yaml`` and is parsed once
per process. Lookups never fail: an unknown or broken blueprint falls back
to a minimal generic contract.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from cardgen.core.config import get_settings
from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import FieldSpec

logger = get_logger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent.parent / "schemas" / "blueprints.yaml"

# UI-facing identifiers -> storage identifiers
SCHEMA_TYPE_ALIASES: dict[str, str] = {
    "strategic-context": "strategicContext",
    "value-proposition": "valuePropositions",
    "customer-journey": "customerExperience",
    "personas": "personas",
    "persona": "personas",
    "okrs": "okrs",
    "kpis": "kpis",
    "workstream": "workstreams",
    "epic": "epics",
    "feature": "features",
    "user-journey": "userJourneys",
    "experience-section": "experienceSections",
    "service-blueprint": "serviceBlueprints",
    "organisational-capability": "organisationalCapabilities",
    "gtm-play": "gtmPlays",
    "tech-requirements": "techRequirements",
    "prd": "features",
    "technical-requirement": "techRequirements",
    "technical-requirement-structured": "techRequirements",
    "task-list": "features",
    "problem-statement": "problemStatements",
}

# field type -> (JSON shape hint, literal example)
_JSON_HINTS: dict[str, tuple[str, str]] = {
    "string": ("string", '""'),
    "textarea": ("string (multiline)", '"Multi-line text content"'),
    "array": ("array of strings", '["item1", "item2"]'),
    "enum": ("string (enum)", '"option1"'),
    "number": ("number", "0"),
    "boolean": ("boolean", "true"),
}

# Raw registry types that render as plain strings
_TYPE_SYNONYMS: dict[str, str] = {
    "text": "string",
    "object": "string",
}


def normalize_schema_type(schema_type: str) -> str:
    """Map a UI blueprint identifier to its storage identifier."""
    return SCHEMA_TYPE_ALIASES.get(schema_type, schema_type)


def build_field_spec(raw: dict[str, Any]) -> FieldSpec:
    """Build a FieldSpec from one registry entry, deriving its JSON hint and example."""
    raw_type = str(raw.get("type", "string"))
    field_type = _TYPE_SYNONYMS.get(raw_type, raw_type)
    if field_type not in _JSON_HINTS:
        field_type = "string"
    json_type, example = _JSON_HINTS[field_type]
    if field_type == "enum" and raw.get("options"):
        example = f'"{raw["options"][0]}"'

    return FieldSpec(
        id=raw["id"],
        display_name=raw.get("name") or raw["id"],
        type=field_type,
        required=bool(raw.get("required", False)),
        description=raw.get("description") or "",
        placeholder=raw.get("placeholder") or "",
        options=[str(o) for o in raw.get("options") or []],
        json_type=json_type,
        example=example,
    )


FALLBACK_FIELDS: tuple[FieldSpec, ...] = (
    build_field_spec({"id": "title", "name": "Title", "type": "string", "required": True, "description": "Card title"}),
    build_field_spec(
        {"id": "description", "name": "Description", "type": "string", "required": True, "description": "Card description"}
    ),
    build_field_spec({"id": "tags", "name": "Tags", "type": "array", "description": "Relevant tags"}),
    build_field_spec(
        {
            "id": "strategicAlignment",
            "name": "Strategic Alignment",
            "type": "string",
            "description": "How this aligns with strategy",
        }
    ),
)


@lru_cache(maxsize=4)
def load_registry(path: str | None = None) -> dict[str, tuple[FieldSpec, ...]]:
    """
    Parse the blueprint registry once.

    Blueprints whose entries fail validation are dropped (and logged) so a
    single bad entry cannot take the registry down.

    Args:
        path: Registry YAML path (defaults to settings override, then bundled file)

    Returns:
        Mapping of storage identifier -> field contract
    """
    registry_path = Path(path) if path else _configured_registry_path()
    try:
        with open(registry_path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load blueprint registry from {registry_path}: {e}")
        return {}

    registry: dict[str, tuple[FieldSpec, ...]] = {}
    for schema_type, blueprint in (raw.get("blueprints") or {}).items():
        try:
            fields = tuple(build_field_spec(entry) for entry in blueprint.get("fields") or [])
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning(f"Skipping malformed blueprint '{schema_type}': {e}")
            continue
        if fields:
            registry[schema_type] = fields

    logger.info(f"Loaded {len(registry)} blueprints from {registry_path}")
    return registry


def _configured_registry_path() -> Path:
    try:
        override = get_settings().SCHEMA_REGISTRY_PATH
    except Exception:
        override = None
    return Path(override) if override else DEFAULT_REGISTRY_PATH


def load_fields(schema_type: str, registry: dict[str, tuple[FieldSpec, ...]] | None = None) -> list[FieldSpec]:
    """
    Get the field contract for a schema type.

    Args:
        schema_type: UI or storage identifier
        registry: Pre-loaded registry (defaults to the cached bundled one)

    Returns:
        Field specs, or the generic fallback contract when none is registered
    """
    if registry is None:
        registry = load_registry()
    fields = registry.get(normalize_schema_type(schema_type))
    if not fields:
        logger.warning(f"No field contract for '{schema_type}', using generic fallback")
        return list(FALLBACK_FIELDS)
    return list(fields)
