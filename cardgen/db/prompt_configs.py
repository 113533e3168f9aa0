"""Database access layer for per-schema prompt configs and context sources."""

from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import ContextSourceConfig, PromptConfig
from cardgen.db.supabase_client import get_supabase

logger = get_logger(__name__)

USAGE_UPDATE_ATTEMPTS = 3


class ConfigNotFoundError(Exception):
    """Raised when a schema type has no active prompt config."""

    def __init__(self, schema_type: str):
        self.schema_type = schema_type
        super().__init__(f"No active prompt found for blueprint type: {schema_type}")


def _row_to_prompt_config(schema_type: str, row: dict[str, Any]) -> PromptConfig:
    return PromptConfig(
        schema_type=schema_type,
        system_prompt_template=row.get("system_prompt") or "",
        temperature=row.get("temperature"),
        max_tokens=row.get("max_tokens"),
        model_name=row.get("model_preference"),
        usage_count=row.get("times_used") or 0,
        last_used_at=row.get("last_used_at"),
    )


def get_active_prompt_config(schema_type: str) -> PromptConfig:
    """
    Get the active prompt config for a schema type.

    Args:
        schema_type: Storage identifier of the blueprint type

    Returns:
        PromptConfig for the single active row

    Raises:
        ConfigNotFoundError: If no active row exists
    """
    supabase = get_supabase()
    response = (
        supabase.table("ai_system_prompts")
        .select("system_prompt, temperature, max_tokens, model_preference, times_used, last_used_at")
        .eq("blueprint_type", schema_type)
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if not response.data:
        raise ConfigNotFoundError(schema_type)
    return _row_to_prompt_config(schema_type, response.data[0])


def increment_prompt_usage(schema_type: str) -> None:
    """
    Bump times_used/last_used_at for the active config. Best-effort.

    The update is conditional on the times_used value just read, so two
    concurrent bumps cannot both write the same count; a lost race re-reads
    and retries.
    """
    try:
        supabase = get_supabase()
        for _ in range(USAGE_UPDATE_ATTEMPTS):
            current = (
                supabase.table("ai_system_prompts")
                .select("times_used")
                .eq("blueprint_type", schema_type)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
            if not current.data:
                logger.warning(f"No active prompt to count usage for {schema_type}")
                return

            times_used = current.data[0].get("times_used")
            query = supabase.table("ai_system_prompts").update(
                {
                    "times_used": (times_used or 0) + 1,
                    "last_used_at": datetime.now(timezone.utc).isoformat(),
                }
            ).eq("blueprint_type", schema_type).eq("is_active", True)
            query = query.is_("times_used", "null") if times_used is None else query.eq("times_used", times_used)

            if query.execute().data:
                return

        logger.warning(f"Prompt usage for {schema_type} changed concurrently; giving up after retries")
    except Exception as e:
        logger.warning(f"Failed to increment prompt usage for {schema_type}: {e}")


def list_context_sources(schema_type: str) -> list[ContextSourceConfig]:
    """
    List configured context sources for a target schema type.

    Rows are returned in configured order; that order decides prompt primacy.
    A malformed row is logged and skipped without dropping the others.

    Args:
        schema_type: Storage identifier of the target blueprint type

    Returns:
        Ordered list of ContextSourceConfig
    """
    supabase = get_supabase()
    response = supabase.rpc(
        "get_ai_context_config_from_prompts", {"p_blueprint_type": schema_type}
    ).execute()

    sources = []
    for position, row in enumerate(response.data or []):
        try:
            source = ContextSourceConfig(
                source_schema_type=row["context_blueprint"],
                max_records=row.get("max_cards") or 0,
                inclusion_strategy=row.get("inclusion_strategy") or "optional",
                summarization_required=bool(row.get("summarization_required")),
                summarization_prompt=row.get("summarization_prompt"),
                weight=row.get("weight") if row.get("weight") is not None else 1.0,
                description=row.get("description"),
            )
        except (KeyError, ValidationError) as e:
            logger.warning(f"Skipping malformed context source #{position} for {schema_type}: {e}")
            continue
        sources.append(source)
    return sources
