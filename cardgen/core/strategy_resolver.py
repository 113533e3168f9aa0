"""Resolve the strategy scope for a generation when the caller omits one.

Tiers are tried in order and the first hit wins:
    1. strategy of the user's most recently updated card
    2. the user's most recently updated strategy
    3. the user's most recently updated strategy within the last 24 hours

Tier 3 is subsumed by tier 2 in practice; it is kept so the lookup order
stays stable if tier 2 is ever narrowed.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from cardgen.core.logging import get_logger
from cardgen.db.cards import get_latest_card_strategy_id
from cardgen.db.strategies import get_latest_strategy_id

logger = get_logger(__name__)

ACTIVE_SESSION_WINDOW = timedelta(hours=24)


async def resolve_strategy_id(user_id: str, strategy_id: str | None = None) -> str | None:
    """
    Return the given strategy ID, or infer one from recent user activity.

    Never raises: lookup failures fall through to the next tier and a miss
    on every tier returns None (generation then runs without context).
    """
    if strategy_id:
        return strategy_id

    tiers = (
        ("recent card activity", lambda: get_latest_card_strategy_id(user_id)),
        ("recent strategy access", lambda: get_latest_strategy_id(user_id)),
        (
            "recent activity (24h)",
            lambda: get_latest_strategy_id(
                user_id, updated_since=datetime.now(timezone.utc) - ACTIVE_SESSION_WINDOW
            ),
        ),
    )

    for label, lookup in tiers:
        try:
            found = await asyncio.to_thread(lookup)
        except Exception as e:
            logger.warning(f"Strategy lookup via {label} failed for user {user_id}: {e}")
            continue
        if found:
            logger.info(
                f"Resolved strategy from {label}: {found}",
                extra={"user_id": user_id, "strategy_id": found},
            )
            return found

    logger.info(f"No strategy context detected for user {user_id}; continuing without context")
    return None
