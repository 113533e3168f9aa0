"""Context aggregation: fold related cards into a prompt-ready summary.

Sources are processed strictly in configured order and the summary keeps
that order, so earlier sources sit higher in the prompt. A failing source
is logged and skipped; a failing summary degrades to a placeholder.
"""

import asyncio
import json

from cardgen.chains.generate_fields import call_model
from cardgen.core.config import get_settings
from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import AggregatedContext, ContextRecord, ContextSourceConfig
from cardgen.db.cards import list_context_cards

logger = get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are a strategic analyst. Summarize the following cards according to the given instructions."
)
DEFAULT_SUMMARY_INSTRUCTION = "Summarize key points"
SUMMARY_UNAVAILABLE = "Summary unavailable"


def format_record_line(record: ContextRecord) -> str:
    return f"{record.schema_type}: {record.title} - {record.description or 'No description'}"


def _records_for_summary(records: list[ContextRecord]) -> str:
    return "\n\n---\n\n".join(
        f"Card: {r.title}\nDescription: {r.description or 'None'}\nData: {json.dumps(r.raw_data, default=str)}"
        for r in records
    )


async def summarize_records(
    records: list[ContextRecord],
    instruction: str | None = None,
    user_id: str | None = None,
) -> str:
    """
    Condense many records into one block with the cheaper summary model.

    Returns:
        Summary text, or "Summary unavailable" if the call fails
    """
    settings = get_settings()
    user_prompt = (
        f"{instruction or DEFAULT_SUMMARY_INSTRUCTION}\n\n"
        f"Cards to summarize:\n{_records_for_summary(records)}"
    )
    try:
        completion = await call_model(
            SUMMARY_SYSTEM_PROMPT,
            user_prompt,
            settings.SUMMARY_MODEL,
            settings.SUMMARY_TEMPERATURE,
            settings.SUMMARY_MAX_TOKENS,
            json_mode=False,
            chain="summarize_context",
            user_id=user_id,
        )
    except Exception as e:
        logger.warning(f"Summarization failed for {len(records)} records: {e}")
        return SUMMARY_UNAVAILABLE

    summary = completion.content.strip()
    if not summary:
        logger.warning("Summarization returned empty content")
        return SUMMARY_UNAVAILABLE
    return summary


async def gather_context(
    scope_id: str | None,
    user_id: str,
    sources: list[ContextSourceConfig],
) -> AggregatedContext:
    """
    Fetch and summarize context records for each configured source.

    Args:
        scope_id: Strategy to filter by (None = any strategy)
        user_id: Owner of the context cards
        sources: Context sources in priority order

    Returns:
        AggregatedContext with the ordered summary and all records used
    """
    settings = get_settings()

    if settings.MAX_CONTEXT_SOURCES and len(sources) > settings.MAX_CONTEXT_SOURCES:
        logger.warning(
            f"{len(sources)} context sources configured; using the first {settings.MAX_CONTEXT_SOURCES}"
        )
        sources = sources[: settings.MAX_CONTEXT_SOURCES]

    records: list[ContextRecord] = []
    blocks: list[str] = []

    for source in sources:
        source_type = source.source_schema_type

        if source.inclusion_strategy == "if_exists" and not scope_id:
            logger.info(f"Skipping {source_type}: inclusion strategy requires a strategy")
            continue

        try:
            fetched = await asyncio.to_thread(
                list_context_cards, user_id, source_type, scope_id, source.max_records
            )
        except Exception as e:
            logger.warning(f"Failed to fetch {source_type} context cards: {e}")
            continue

        if not fetched:
            logger.info(
                f"No {source_type} cards found for user {user_id} "
                f"{f'in strategy {scope_id}' if scope_id else '(global)'}"
            )
            continue

        records.extend(fetched)

        if source.summarization_required and len(fetched) > settings.SUMMARY_THRESHOLD:
            summary = await summarize_records(fetched, source.summarization_prompt, user_id=user_id)
            blocks.append(f"{source_type}: {summary}")
        else:
            blocks.append("\n".join(format_record_line(r) for r in fetched))

        logger.info(
            f"Gathered {len(fetched)} {source_type} cards",
            extra={"source": source_type, "weight": source.weight, "count": len(fetched)},
        )

    summary = "\n\n".join(blocks)
    logger.info(
        f"Context gathering complete: {len(records)} cards, {len(summary)} chars",
        extra={"user_id": user_id, "strategy_id": scope_id},
    )
    return AggregatedContext(summary=summary, records=records)
