"""API endpoints for edit-mode and voice-edit card generation."""

import asyncio
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from cardgen.core.logging import get_logger
from cardgen.core.schemas_generation import GenerationResult
from cardgen.db.generation_history import list_generation_history
from cardgen.services.card_generator import CardFieldGenerator

logger = get_logger(__name__)

router = APIRouter()


class EditModeGenerateRequest(BaseModel):
    card_id: str = Field(..., min_length=1)
    blueprint_type: str = Field(..., min_length=1)
    card_title: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    strategy_id: str | None = None
    existing_fields: dict[str, Any] = Field(default_factory=dict)


class VoiceEditRequest(BaseModel):
    card_id: str = Field(..., min_length=1)
    blueprint_type: str = Field(..., min_length=1)
    card_title: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    transcript: str = Field(..., min_length=1)
    existing_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("transcript")
    @classmethod
    def _transcript_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("transcript must not be blank")
        return value


@lru_cache(maxsize=1)
def get_generator() -> CardFieldGenerator:
    """Process-wide generator; its cache and coalescer live for the process."""
    return CardFieldGenerator()


@router.post("/edit-mode", response_model=GenerationResult)
async def generate_edit_mode(
    request: EditModeGenerateRequest,
    generator: CardFieldGenerator = Depends(get_generator),
) -> GenerationResult:
    """
    Generate content for every field of a card using strategy context.

    Failures come back as ``success=false`` with a displayable error.
    """
    logger.info(
        f"Edit mode generation requested for card {request.card_id}",
        extra={"blueprint_type": request.blueprint_type, "has_existing_fields": bool(request.existing_fields)},
    )
    try:
        return await generator.generate(
            record_id=request.card_id,
            schema_type=request.blueprint_type,
            title=request.card_title,
            user_id=request.user_id,
            scope_id=request.strategy_id,
            existing_fields=request.existing_fields,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.post("/voice-edit", response_model=GenerationResult)
async def voice_edit(
    request: VoiceEditRequest,
    generator: CardFieldGenerator = Depends(get_generator),
) -> GenerationResult:
    """Rewrite a card's fields from a dictated transcript."""
    logger.info(
        f"Voice edit requested for card {request.card_id}",
        extra={"blueprint_type": request.blueprint_type, "transcript_length": len(request.transcript)},
    )
    try:
        return await generator.generate_from_voice(
            record_id=request.card_id,
            schema_type=request.blueprint_type,
            title=request.card_title,
            transcript=request.transcript,
            user_id=request.user_id,
            existing_fields=request.existing_fields,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.get("/history/{card_id}")
async def get_generation_history(
    card_id: str,
    limit: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    """List recent generation attempts for a card."""
    try:
        rows = await asyncio.to_thread(list_generation_history, card_id, limit)
    except Exception as e:
        logger.error(f"Failed to load generation history for card {card_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load generation history") from e
    return {"card_id": card_id, "history": rows}
