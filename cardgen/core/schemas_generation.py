"""Pydantic schemas for context-aware card field generation."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

FieldType = Literal["string", "textarea", "array", "enum", "number", "boolean"]
InclusionStrategy = Literal["required", "optional", "if_exists"]


class GenerationMode(str, Enum):
    """How the caller supplied intent for a generation."""

    STANDARD = "standard"
    VOICE = "voice"


class GenerationRequest(BaseModel):
    """A single request to fill the fields of one card."""

    record_id: str = Field(..., min_length=1, description="ID of the card being edited")
    schema_type: str = Field(..., min_length=1, description="Blueprint type of the card")
    title: str = Field(..., min_length=1, description="Title of the card")
    user_id: str = Field(..., min_length=1, description="Requesting user")
    scope_id: str | None = Field(default=None, description="Strategy ID for context")
    existing_fields: dict[str, Any] = Field(default_factory=dict, description="Current field values")
    mode: GenerationMode = Field(default=GenerationMode.STANDARD)
    transcript: str | None = Field(default=None, description="Spoken transcript (voice mode only)")

    @model_validator(mode="after")
    def _transcript_matches_mode(self) -> "GenerationRequest":
        has_transcript = bool(self.transcript and self.transcript.strip())
        if self.mode == GenerationMode.VOICE and not has_transcript:
            raise ValueError("transcript is required in voice mode")
        if self.mode == GenerationMode.STANDARD and self.transcript is not None:
            raise ValueError("transcript is only accepted in voice mode")
        return self

    @property
    def coalescing_key(self) -> tuple[str, str, str]:
        return (self.user_id, self.record_id, self.mode.value)


class PromptConfig(BaseModel):
    """Active generation settings for one schema type."""

    schema_type: str
    system_prompt_template: str
    temperature: float | None = None
    max_tokens: int | None = None
    model_name: str | None = None
    usage_count: int = 0
    last_used_at: datetime | None = None


class FieldSpec(BaseModel):
    """One field in a schema type's contract."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    type: FieldType = "string"
    required: bool = False
    description: str = ""
    placeholder: str = ""
    options: list[str] = Field(default_factory=list)
    json_type: str = "string"
    example: str = '""'


class ContextSourceConfig(BaseModel):
    """A related schema type folded into the prompt as background."""

    source_schema_type: str
    max_records: int = Field(default=0, ge=0, description="0 means unlimited")
    inclusion_strategy: InclusionStrategy = "optional"
    summarization_required: bool = False
    summarization_prompt: str | None = None
    weight: float = 1.0
    description: str | None = None


class ContextRecord(BaseModel):
    """Read-only snapshot of a card used as background context."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str | None = None
    schema_type: str
    scope_id: str | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict)


class AggregatedContext(BaseModel):
    """Output of context aggregation: ordered summary plus the records behind it."""

    summary: str = ""
    records: list[ContextRecord] = Field(default_factory=list)


class GenerationMetadata(BaseModel):
    tokens_used: int = 0
    context_records_used: int | None = None
    transcript_length: int | None = None
    duration_ms: int = 0
    model: str | None = None


class GenerationResult(BaseModel):
    """Outcome of a generation. Never partially successful."""

    success: bool
    fields: dict[str, Any] | None = None
    metadata: GenerationMetadata | None = None
    error: str | None = None

    @classmethod
    def ok(cls, fields: dict[str, Any], metadata: GenerationMetadata) -> "GenerationResult":
        return cls(success=True, fields=fields, metadata=metadata)

    @classmethod
    def failed(cls, error: str) -> "GenerationResult":
        return cls(success=False, error=error)


class VoiceAnalysis(BaseModel):
    """Signals derived from a transcript before prompting."""

    themes: list[str] = Field(default_factory=list)
    field_hints: dict[str, str] = Field(default_factory=dict)
    summary: str = ""


class GenerationHistoryEntry(BaseModel):
    """Immutable audit row written once per generation attempt."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    card_id: str
    blueprint_type: str
    mode: GenerationMode
    context_used: list[dict[str, Any]] = Field(default_factory=list)
    prompt_used: str = ""
    fields_generated: dict[str, Any] = Field(default_factory=dict)
    total_tokens_used: int = 0
    generation_time_ms: int = 0
    model_used: str | None = None
    success: bool
    error_message: str | None = None
    transcript_preview: str | None = None
    themes: list[str] = Field(default_factory=list)

    def to_row(self) -> dict[str, Any]:
        """Map to the ai_generation_history column layout."""
        row = {
            "user_id": self.user_id,
            "card_id": self.card_id,
            "blueprint_type": self.blueprint_type,
            "generation_mode": self.mode.value,
            "context_used": self.context_used,
            "prompt_used": self.prompt_used,
            "fields_generated": self.fields_generated,
            "total_tokens_used": self.total_tokens_used,
            "generation_time_ms": self.generation_time_ms,
            "model_used": self.model_used,
            "success": self.success,
            "error_message": self.error_message,
        }
        if self.mode == GenerationMode.VOICE:
            row["transcript_preview"] = self.transcript_preview
            row["themes"] = self.themes
        return row
