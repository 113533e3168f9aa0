"""Cards database operations used for context gathering."""

from typing import Any

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import ContextRecord
from cardgen.db.supabase_client import get_supabase

logger = get_logger(__name__)


def list_context_cards(
    user_id: str,
    card_type: str,
    strategy_id: str | None = None,
    limit: int = 0,
) -> list[ContextRecord]:
    """
    List a user's cards of one type, optionally within a strategy.

    Args:
        user_id: Owner of the cards
        card_type: Blueprint type to fetch
        strategy_id: Restrict to this strategy when given
        limit: Max rows (0 = unlimited)

    Returns:
        List of ContextRecord snapshots
    """
    supabase = get_supabase()
    query = (
        supabase.table("cards")
        .select("id, title, description, card_type, card_data, strategy_id")
        .eq("user_id", user_id)
        .eq("card_type", card_type)
    )
    if strategy_id:
        query = query.eq("strategy_id", strategy_id)
    if limit:
        query = query.limit(limit)

    response = query.execute()
    return [_row_to_record(row) for row in response.data or []]


def get_latest_card_strategy_id(user_id: str) -> str | None:
    """Strategy of the user's most recently updated card of any type."""
    supabase = get_supabase()
    response = (
        supabase.table("cards")
        .select("strategy_id")
        .eq("created_by", user_id)
        .not_.is_("strategy_id", "null")
        .order("updated_at", desc=True)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0].get("strategy_id")


def _row_to_record(row: dict[str, Any]) -> ContextRecord:
    strategy_id = row.get("strategy_id")
    return ContextRecord(
        id=str(row["id"]),
        title=row.get("title") or "",
        description=row.get("description"),
        schema_type=row.get("card_type") or "",
        scope_id=str(strategy_id) if strategy_id is not None else None,
        raw_data=row.get("card_data") or {},
    )
