"""Configuration settings loaded from .env file."""

from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Claude models go through the Claude Agent SDK, which authenticates via the
    Claude Code CLI. OpenAI and OpenRouter models need their API keys here.
    """

    # Text models
    default_chapter_model: str = "anthropic/claude-sonnet-4"
    default_outline_model: str = "openai/gpt-4o-mini"
    default_image_model: str = "dall-e-3"

    # Provider credentials
    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    app_url: str = "http://localhost:3000"
    provider_timeout: float = 180.0

    # Database
    sqlite_db_path: Path = Path("./data/books.db")

    # Batching and continuity context
    chapters_per_batch: int = 4
    context_recent_chapters: int = 2
    context_excerpt_chars: int = 500

    # Step retry policy
    step_max_retries: int = 3
    step_retry_backoff: float = 2.0

    # Book metadata
    words_per_page: int = 250

    # Logging
    log_dir: Path = Path("./data/logs")
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("chapters_per_batch", "context_recent_chapters", "words_per_page", "log_max_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @field_validator("step_max_retries", "context_excerpt_chars", "log_backup_count")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must be non-negative")
        return v

    @field_validator("step_retry_backoff", "provider_timeout")
    @classmethod
    def validate_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Seconds must be non-negative")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_models(self) -> "Settings":
        for name in ("default_chapter_model", "default_outline_model", "default_image_model"):
            if not getattr(self, name).strip():
                raise ValueError(f"{name} must not be empty")
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
