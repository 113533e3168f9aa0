"""Database access layer for the append-only generation history."""

from typing import Any

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import GenerationHistoryEntry
from cardgen.db.supabase_client import get_supabase

logger = get_logger(__name__)


def insert_generation_history(entry: GenerationHistoryEntry) -> None:
    """Append one history row. Raises on database errors."""
    supabase = get_supabase()
    supabase.table("ai_generation_history").insert(entry.to_row()).execute()
    logger.debug(
        f"Recorded generation history for card {entry.card_id}",
        extra={"card_id": entry.card_id, "success": entry.success},
    )


def list_generation_history(card_id: str, limit: int = 20) -> list[dict[str, Any]]:
    """List the most recent history rows for a card, newest first."""
    supabase = get_supabase()
    response = (
        supabase.table("ai_generation_history")
        .select("*")
        .eq("card_id", card_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []
