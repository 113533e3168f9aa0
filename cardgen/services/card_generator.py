"""Card field generation orchestrator.

One instance owns its context cache and request coalescer, so separate
instances (e.g. per test) share no state. Pipeline per request:

    resolve strategy -> prompt config -> field contract -> context (cached)
    -> compose prompt -> model call -> merge -> telemetry

The whole pipeline runs under the coalescer keyed by (user, card, mode):
concurrent duplicates share one run and one result.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from cardgen.chains.compose_prompt import ComposedPrompt, compose_standard, compose_voice
from cardgen.chains.gather_context import gather_context
from cardgen.chains.generate_fields import GenerationFailedError, generate_fields
from cardgen.core.config import get_settings
from cardgen.core.context_cache import ContextCache
from cardgen.core.field_merge import FieldMergePolicy, LengthHeuristicMergePolicy
from cardgen.core.field_schemas import load_fields, normalize_schema_type
from cardgen.core.logging import get_logger, log_with_context
from cardgen.core.schemas_generation import (
    AggregatedContext,
    FieldSpec,
    GenerationHistoryEntry,
    GenerationMetadata,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    PromptConfig,
)
from cardgen.core.single_flight import RequestCoalescer
from cardgen.core.strategy_resolver import resolve_strategy_id
from cardgen.core.voice_themes import TRANSCRIPT_PREVIEW_CHARS, analyze_transcript
from cardgen.db.prompt_configs import ConfigNotFoundError, get_active_prompt_config, list_context_sources
from cardgen.services.generation_telemetry import record_generation

logger = get_logger(__name__)

GENERIC_ERROR = "Generation failed"


@dataclass
class _Attempt:
    """What is known about a run so far; feeds the history row."""

    request: GenerationRequest
    schema_type: str
    started_at: float
    model: str | None = None
    prompt_used: str = ""
    context: AggregatedContext = field(default_factory=AggregatedContext)
    themes: list[str] = field(default_factory=list)
    tokens_used: int = 0

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class CardFieldGenerator:
    def __init__(
        self,
        cache: ContextCache | None = None,
        coalescer: RequestCoalescer | None = None,
        merge_policy: FieldMergePolicy | None = None,
        registry: dict[str, tuple[FieldSpec, ...]] | None = None,
    ):
        settings = get_settings()
        self.cache = cache or ContextCache(
            ttl_seconds=settings.CONTEXT_CACHE_TTL_SECONDS,
            max_entries=settings.CONTEXT_CACHE_MAX_ENTRIES,
        )
        self.coalescer = coalescer or RequestCoalescer()
        self.merge_policy = merge_policy or LengthHeuristicMergePolicy()
        self._registry = registry

    async def generate(
        self,
        record_id: str,
        schema_type: str,
        title: str,
        user_id: str,
        scope_id: str | None = None,
        existing_fields: dict[str, Any] | None = None,
    ) -> GenerationResult:
        """Fill a card's fields from its title, existing values and strategy context."""
        request = GenerationRequest(
            record_id=record_id,
            schema_type=schema_type,
            title=title,
            user_id=user_id,
            scope_id=scope_id,
            existing_fields=existing_fields or {},
            mode=GenerationMode.STANDARD,
        )
        return await self.run(request)

    async def generate_from_voice(
        self,
        record_id: str,
        schema_type: str,
        title: str,
        transcript: str,
        user_id: str,
        existing_fields: dict[str, Any] | None = None,
    ) -> GenerationResult:
        """Rewrite a card's fields according to a spoken transcript."""
        request = GenerationRequest(
            record_id=record_id,
            schema_type=schema_type,
            title=title,
            user_id=user_id,
            existing_fields=existing_fields or {},
            mode=GenerationMode.VOICE,
            transcript=transcript,
        )
        return await self.run(request)

    async def run(self, request: GenerationRequest) -> GenerationResult:
        return await self.coalescer.run(request.coalescing_key, lambda: self._execute(request))

    async def _execute(self, request: GenerationRequest) -> GenerationResult:
        attempt = _Attempt(
            request=request,
            schema_type=normalize_schema_type(request.schema_type),
            started_at=time.monotonic(),
        )
        logger.info(
            f"Starting {request.mode.value} generation for card {request.record_id}",
            extra={
                "card_id": request.record_id,
                "user_id": request.user_id,
                "blueprint_type": attempt.schema_type,
            },
        )

        try:
            result = await self._pipeline(attempt)
        except ConfigNotFoundError as e:
            logger.error(str(e), extra={"card_id": request.record_id})
            result = GenerationResult.failed(str(e))
        except GenerationFailedError as e:
            result = GenerationResult.failed(str(e))
        except Exception as e:
            logger.error(f"Generation error for card {request.record_id}: {e}", exc_info=True)
            result = GenerationResult.failed(GENERIC_ERROR)

        await record_generation(self._history_entry(attempt, result))
        return result

    async def _pipeline(self, attempt: _Attempt) -> GenerationResult:
        request = attempt.request
        settings = get_settings()

        scope_id = await resolve_strategy_id(request.user_id, request.scope_id)

        config = await asyncio.to_thread(get_active_prompt_config, attempt.schema_type)
        attempt.model = config.model_name or settings.DEFAULT_GENERATION_MODEL

        fields = load_fields(attempt.schema_type, self._registry)
        attempt.context = await self._load_context(attempt.schema_type, request.user_id, scope_id)

        prompt = self._compose(attempt, config, fields, scope_id)
        attempt.prompt_used = prompt.system

        generated, completion = await generate_fields(
            prompt.system,
            prompt.user,
            attempt.model,
            config.temperature if config.temperature is not None else settings.DEFAULT_TEMPERATURE,
            config.max_tokens or settings.DEFAULT_MAX_TOKENS,
            user_id=request.user_id,
            card_id=request.record_id,
            chain="voice_edit" if request.mode == GenerationMode.VOICE else "edit_mode",
        )
        attempt.tokens_used = completion.tokens_used
        attempt.model = completion.model

        merged = self.merge_policy.merge(request.existing_fields, generated)

        metadata = GenerationMetadata(
            tokens_used=completion.tokens_used,
            context_records_used=len(attempt.context.records),
            transcript_length=len(request.transcript) if request.transcript else None,
            duration_ms=attempt.elapsed_ms,
            model=completion.model,
        )
        log_with_context(
            logger,
            logging.INFO,
            f"Generation completed for card {request.record_id}",
            mode=request.mode.value,
            tokens_used=metadata.tokens_used,
            generation_time_ms=metadata.duration_ms,
            fields_generated=len(merged),
        )
        return GenerationResult.ok(merged, metadata)

    async def _load_context(self, schema_type: str, user_id: str, scope_id: str | None) -> AggregatedContext:
        if not scope_id:
            logger.info("No strategy context available - skipping context gathering")
            return AggregatedContext()

        try:
            sources = await asyncio.to_thread(list_context_sources, schema_type)
        except Exception as e:
            logger.warning(f"Failed to fetch context config for {schema_type}: {e}")
            return AggregatedContext()

        if not sources:
            logger.info(f"No context config found for {schema_type} - skipping context gathering")
            return AggregatedContext()

        key = ContextCache.make_key(user_id, scope_id, schema_type)
        return await self.cache.get_or_populate(key, lambda: gather_context(scope_id, user_id, sources))

    def _compose(
        self,
        attempt: _Attempt,
        config: PromptConfig,
        fields: list[FieldSpec],
        scope_id: str | None,
    ) -> ComposedPrompt:
        request = attempt.request
        if request.mode == GenerationMode.VOICE:
            analysis = analyze_transcript(
                request.transcript, attempt.schema_type, request.existing_fields, scope_id, fields
            )
            attempt.themes = analysis.themes
            return compose_voice(
                config.system_prompt_template,
                fields,
                attempt.schema_type,
                request.title,
                request.transcript,
                analysis,
                request.existing_fields,
                attempt.context.summary,
            )
        return compose_standard(
            config.system_prompt_template,
            fields,
            attempt.schema_type,
            request.title,
            request.existing_fields,
            attempt.context.summary,
        )

    @staticmethod
    def _history_entry(attempt: _Attempt, result: GenerationResult) -> GenerationHistoryEntry:
        request = attempt.request
        return GenerationHistoryEntry(
            user_id=request.user_id,
            card_id=request.record_id,
            blueprint_type=attempt.schema_type,
            mode=request.mode,
            context_used=[
                {"id": r.id, "blueprint_type": r.schema_type, "title": r.title}
                for r in attempt.context.records
            ],
            prompt_used=attempt.prompt_used,
            fields_generated=result.fields or {},
            total_tokens_used=attempt.tokens_used,
            generation_time_ms=attempt.elapsed_ms,
            model_used=attempt.model,
            success=result.success,
            error_message=result.error,
            transcript_preview=request.transcript[:TRANSCRIPT_PREVIEW_CHARS] if request.transcript else None,
            themes=attempt.themes,
        )
