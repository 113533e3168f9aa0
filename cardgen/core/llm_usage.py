"""Token and cost accounting for generation and summarization calls.

One row per provider call goes to ``llm_usage_log``. Writes are best-effort:
a failed insert is logged and never reaches the generation pipeline.
"""

from cardgen.core.logging import get_logger
from cardgen.db.supabase_client import get_supabase

logger = get_logger(__name__)

# USD per 1M tokens (input, output), matched by model-name prefix.
# Longer prefixes first so "gpt-4o-mini" is not priced as "gpt-4o".
PRICING_BY_PREFIX: tuple[tuple[str, float, float], ...] = (
    ("gpt-4o-mini", 0.15, 0.60),
    ("gpt-4o", 2.50, 10.0),
    ("claude-haiku-4", 0.80, 4.0),
    ("claude-sonnet-4", 3.0, 15.0),
)


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimated USD cost of one call, or 0.0 for an unpriced model."""
    for prefix, input_rate, output_rate in PRICING_BY_PREFIX:
        if model.startswith(prefix):
            return round((tokens_input * input_rate + tokens_output * output_rate) / 1_000_000, 6)
    logger.warning(f"No pricing for model '{model}'; recording cost as 0")
    return 0.0


def log_llm_usage(
    workflow: str,
    model: str,
    provider: str,
    tokens_input: int,
    tokens_output: int,
    duration_ms: int = 0,
    user_id: str | None = None,
    card_id: str | None = None,
    chain: str | None = None,
) -> None:
    """Insert one usage row. Never raises."""
    row = {
        "workflow": workflow,
        "chain": chain,
        "model": model,
        "provider": provider,
        "tokens_input": tokens_input,
        "tokens_output": tokens_output,
        "estimated_cost_usd": estimate_cost(model, tokens_input, tokens_output),
        "duration_ms": duration_ms,
        "user_id": user_id,
        "card_id": card_id,
    }
    row = {k: v for k, v in row.items() if v is not None}

    try:
        get_supabase().table("llm_usage_log").insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to log LLM usage for {workflow}/{chain or '-'}: {e}")
        return

    logger.debug(
        f"LLM usage: {workflow}/{chain or '-'} {model} "
        f"{tokens_input}+{tokens_output} tokens ${row['estimated_cost_usd']:.4f}"
    )
