"""Model invocation for card field generation.

Routes ``claude-*`` models to Anthropic and everything else to OpenAI,
requests a single JSON object, and logs token usage for every call.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any

import anthropic
import openai

from cardgen.core.llm import get_anthropic_client, get_openai_client, parse_llm_json_dict, provider_for_model
from cardgen.core.llm_usage import log_llm_usage
from cardgen.core.logging import get_logger

logger = get_logger(__name__)

_TIMEOUT_ERRORS = (asyncio.TimeoutError, openai.APITimeoutError, anthropic.APITimeoutError)


class GenerationFailedError(Exception):
    """The provider call failed or returned unusable output. Message is user-safe."""


@dataclass(frozen=True)
class ModelCompletion:
    content: str
    model: str
    provider: str
    tokens_input: int
    tokens_output: int
    duration_ms: int

    @property
    def tokens_used(self) -> int:
        return self.tokens_input + self.tokens_output


async def call_model(
    system_prompt: str,
    user_prompt: str,
    model: str,
    temperature: float,
    max_tokens: int,
    *,
    json_mode: bool = True,
    workflow: str = "card_generation",
    chain: str | None = None,
    user_id: str | None = None,
    card_id: str | None = None,
) -> ModelCompletion:
    """
    Make one chat-style call and return its text plus usage.

    Provider exceptions propagate unchanged; callers decide how to degrade.
    """
    provider = provider_for_model(model)
    start = time.monotonic()

    if provider == "anthropic":
        client = get_anthropic_client()
        response = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        tokens_input = response.usage.input_tokens
        tokens_output = response.usage.output_tokens
        model_used = getattr(response, "model", None) or model
    else:
        client = get_openai_client()
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        content = response.choices[0].message.content or ""
        usage = response.usage
        tokens_input = usage.prompt_tokens if usage else 0
        tokens_output = usage.completion_tokens if usage else 0
        model_used = getattr(response, "model", None) or model

    duration_ms = int((time.monotonic() - start) * 1000)

    await asyncio.to_thread(
        log_llm_usage,
        workflow=workflow,
        model=model_used,
        provider=provider,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        duration_ms=duration_ms,
        user_id=user_id,
        card_id=card_id,
        chain=chain,
    )

    return ModelCompletion(
        content=content,
        model=model_used,
        provider=provider,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        duration_ms=duration_ms,
    )


async def generate_fields(
    system_prompt: str,
    user_prompt: str,
    model: str,
    temperature: float,
    max_tokens: int,
    *,
    user_id: str | None = None,
    card_id: str | None = None,
    chain: str = "generate_fields",
) -> tuple[dict[str, Any], ModelCompletion]:
    """
    Generate field values as a JSON object.

    Returns:
        (parsed fields, completion metadata)

    Raises:
        GenerationFailedError: On network error, timeout or unparseable output
    """
    try:
        completion = await call_model(
            system_prompt,
            user_prompt,
            model,
            temperature,
            max_tokens,
            json_mode=True,
            chain=chain,
            user_id=user_id,
            card_id=card_id,
        )
    except _TIMEOUT_ERRORS as e:
        logger.error(f"Generation timed out for card {card_id} on {model}: {e}")
        raise GenerationFailedError("The AI provider timed out. Please try again.") from e
    except Exception as e:
        logger.error(f"Generation request failed for card {card_id} on {model}: {e}")
        raise GenerationFailedError("The AI provider request failed. Please try again.") from e

    try:
        fields = parse_llm_json_dict(completion.content)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(
            f"Unparseable generation output for card {card_id}: {e}",
            extra={"raw_preview": completion.content[:200]},
        )
        raise GenerationFailedError("The AI response could not be parsed. Please try again.") from e

    logger.info(
        f"Generated {len(fields)} fields for card {card_id}",
        extra={"model": completion.model, "tokens": completion.tokens_used, "duration_ms": completion.duration_ms},
    )
    return fields, completion
