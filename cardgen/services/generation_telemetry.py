"""Record generation attempts. Never fails the caller."""

import asyncio

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import GenerationHistoryEntry
from cardgen.db.generation_history import insert_generation_history
from cardgen.db.prompt_configs import increment_prompt_usage

logger = get_logger(__name__)


async def record_generation(entry: GenerationHistoryEntry) -> None:
    """
    Append the history row and, on success, bump the prompt config usage.

    Write failures are logged and swallowed.
    """
    try:
        await asyncio.to_thread(insert_generation_history, entry)
    except Exception as e:
        logger.error(f"Failed to track generation for card {entry.card_id}: {e}")

    if entry.success:
        await asyncio.to_thread(increment_prompt_usage, entry.blueprint_type)
