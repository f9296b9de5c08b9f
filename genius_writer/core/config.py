"""Configuration management for Genius Writer."""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    WRITER_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    FRONTEND_URL: str = Field(
        default="http://localhost:5173", description="Origin of the browser build allowed by CORS"
    )

    # Generation proxy (the browser build talks to this)
    GENERATION_API_URL: str = Field(
        default="http://localhost:8000/v1", description="Base URL of the generation/usage API"
    )
    GENERATION_API_TOKEN: str = Field(default="", description="Bearer token for the generation API")
    GENERATION_TIMEOUT_SECONDS: float | None = Field(
        default=None, description="Optional client timeout; None waits until resolved or cancelled"
    )

    # Direct model access (used by the reference backend)
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    GENERATION_MODEL: str = Field(
        default="claude-3-5-haiku-20241022", description="Default text generation model"
    )
    GENERATION_MAX_TOKENS: int = Field(default=4096, description="Max tokens per generation")

    # Local persistence
    STORAGE_PATH: Path = Field(
        default=Path("storage/genius_writer.json"), description="JSON file backing local storage"
    )
    STORAGE_CAPACITY_BYTES: int = Field(
        default=5_000_000, description="Capacity of the local key/value store"
    )
    MAX_DOCUMENT_VERSIONS: int = Field(default=10, description="Versions kept per document")
    DRAFT_DEBOUNCE_SECONDS: float = Field(default=1.0, description="Quiet period before autosave")

    # Usage gate
    ENTITLEMENT_TTL_SECONDS: int = Field(
        default=300, description="Cached entitlement older than this is treated as unknown"
    )
    DEFAULT_PLAN: str = Field(
        default="free", description="Plan the reference backend reports for callers"
    )

    # Client-side rate limiting: 5 requests burst, refilling one every 2 seconds
    RATE_LIMIT_BURST: int = Field(default=5, description="Token bucket size")
    RATE_LIMIT_PER_SECOND: float = Field(default=0.5, description="Token refill rate")


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process; tests pass explicit Settings(...) instead."""
    return Settings()
