"""
Typed settings for the match report generator.

Uses Pydantic Settings to load configuration from environment variables
with validation and type safety. Settings are loaded from the root .env
file when one exists; in containers the variables are passed directly.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .validate_env import validate_env


class FootballAPIConfig(BaseModel):
    base_url: str = Field(default="https://v3.football.api-sports.io")
    request_timeout_seconds: float = 15.0
    # Free plans can be as low as ~10 requests/minute; keep a safety margin.
    requests_per_minute: int = 8
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    # Wait applied when the response body (not the status) reports a rate limit
    rate_limit_body_wait_seconds: float = 12.0
    # Last season reachable on the free plan; used when standings are restricted
    standings_fallback_season: int = 2023


class CacheConfig(BaseModel):
    default_ttl_seconds: float = 3600.0
    max_entries: int = 1000
    sweep_interval_seconds: float = 600.0


class LLMConfig(BaseModel):
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000
    final_max_tokens: int = 3000
    chat_max_tokens: int = 900
    # Attempts for malformed JSON inside a single completion call
    max_retries: int = 3
    # Attempts for a signal analysis before falling back to a filled default
    signal_attempts: int = 2
    signal_retry_delay_seconds: float = 1.0
    # Attempts for a category merge before the category is skipped
    category_attempts: int = 2


class GenerationConfig(BaseModel):
    signal_concurrency: int = 2
    cancel_on_disconnect: bool = False


class SessionConfig(BaseModel):
    ttl_seconds: float = 7200.0
    sweep_interval_seconds: float = 1800.0


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Nested sections hold tunables with sensible defaults; a handful of flat
    variables override them without requiring double-underscore syntax.
    """
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[1] / ".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="allow",
    )

    football_api_key: str | None = Field(None, alias="APIFOOTBALL_API_KEY")
    football_base_url: str | None = Field(None, alias="APIFOOTBALL_BASE_URL")
    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_model: str | None = Field(None, alias="OPENAI_MODEL")
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str | None = Field(None, alias="LOG_LEVEL")

    football_config: FootballAPIConfig = Field(default_factory=FootballAPIConfig)
    cache_config: CacheConfig = Field(default_factory=CacheConfig)
    llm_config: LLMConfig = Field(default_factory=LLMConfig)
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)
    session_config: SessionConfig = Field(default_factory=SessionConfig)

    requests_per_minute_override: int | None = Field(None, alias="APIFOOTBALL_REQUESTS_PER_MINUTE")
    session_ttl_override: float | None = Field(None, alias="SESSION_TTL_SECONDS")
    signal_concurrency_override: int | None = Field(None, alias="GENERATION_SIGNAL_CONCURRENCY")
    cancel_on_disconnect_override: bool | None = Field(None, alias="GENERATION_CANCEL_ON_DISCONNECT")

    @model_validator(mode="after")
    def _apply_overrides(self) -> Settings:
        """Fold flat env overrides into the nested sections."""
        if self.football_base_url:
            self.football_config.base_url = self.football_base_url
        if self.openai_model:
            self.llm_config.model = self.openai_model
        if self.requests_per_minute_override is not None:
            self.football_config.requests_per_minute = self.requests_per_minute_override
        if self.session_ttl_override is not None:
            self.session_config.ttl_seconds = self.session_ttl_override
        if self.signal_concurrency_override is not None:
            self.generation_config.signal_concurrency = self.signal_concurrency_override
        if self.cancel_on_disconnect_override is not None:
            self.generation_config.cancel_on_disconnect = self.cancel_on_disconnect_override
        return self

    @property
    def allowed_cors_origins(self) -> list[str]:
        """Allow local dev ports for the web UI."""
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Environment variables don't change during runtime, so parsing them once
    is safe.
    """
    validate_env()
    return Settings()


settings = get_settings()
