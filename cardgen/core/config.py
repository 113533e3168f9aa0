"""Configuration management for the card generation service."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Sandboxed environments may not expose .env; rely on real env vars
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Provider keys
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key (claude-* models)")

    # Environment
    CARDGEN_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")

    # Main generation defaults (used when a prompt config leaves them null)
    DEFAULT_GENERATION_MODEL: str = Field(default="gpt-4o-mini", description="Fallback generation model")
    DEFAULT_TEMPERATURE: float = Field(default=0.7, description="Fallback generation temperature")
    DEFAULT_MAX_TOKENS: int = Field(default=4000, description="Fallback generation token limit")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0, description="Provider request timeout")

    # Context summarization
    SUMMARY_MODEL: str = Field(default="gpt-4o-mini", description="Cheaper model for context summaries")
    SUMMARY_TEMPERATURE: float = Field(default=0.3, description="Summary temperature")
    SUMMARY_MAX_TOKENS: int = Field(default=500, description="Summary token limit")
    SUMMARY_THRESHOLD: int = Field(
        default=3, description="Summarize a source only when it yields more records than this"
    )

    # Context cache
    CONTEXT_CACHE_TTL_SECONDS: float = Field(default=300.0, description="Context cache entry lifetime")
    CONTEXT_CACHE_MAX_ENTRIES: int = Field(default=100, description="Context cache capacity")

    # Context sources
    MAX_CONTEXT_SOURCES: int = Field(
        default=3, description="Sources beyond this count are ignored (0 disables the cap)"
    )

    # Schema registry
    SCHEMA_REGISTRY_PATH: str | None = Field(
        default=None, description="Override path to the blueprint YAML registry"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
