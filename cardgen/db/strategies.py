"""Strategies database operations."""

from datetime import datetime

from cardgen.db.supabase_client import get_supabase


def get_latest_strategy_id(user_id: str, updated_since: datetime | None = None) -> str | None:
    """
    ID of the user's most recently updated strategy.

    Args:
        user_id: Owner of the strategy
        updated_since: Only consider strategies updated at or after this time

    Returns:
        Strategy ID or None
    """
    supabase = get_supabase()
    query = supabase.table("strategies").select("id").eq("userId", user_id)
    if updated_since is not None:
        query = query.gte("updatedAt", updated_since.isoformat())
    response = query.order("updatedAt", desc=True).limit(1).execute()
    if not response.data:
        return None
    return str(response.data[0]["id"])
