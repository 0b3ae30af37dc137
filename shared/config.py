"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis (tenant usage store)
    REDIS_URL: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection string"
    )
    USAGE_STORE_BACKEND: str = Field(
        default="memory",
        description="Where tenant AI usage counters live: 'memory' or 'redis'"
    )

    # OpenAI (primary tool-calling provider)
    OPENAI_API_KEY: str = Field(default="sk-placeholder")
    OPENAI_BASE_URL: str | None = Field(
        default=None,
        description="Optional OpenAI-compatible base URL (proxies, gateways)"
    )

    # Anthropic (secondary provider)
    ANTHROPIC_API_KEY: str = Field(default="sk-ant-placeholder")

    # Model defaults (used when the tenant has no explicit preference)
    DEFAULT_PRIMARY_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Options: gpt-4o-mini, gpt-4o, gpt-3.5-turbo, haiku, sonnet"
    )
    DEFAULT_FALLBACK_MODEL: str = Field(default="haiku")
    DEFAULT_TEMPERATURE: float = Field(default=0.2)
    DEFAULT_MAX_TOKENS: int = Field(default=1000)

    # Provider resilience
    PROVIDER_TIMEOUT_MS: int = Field(
        default=8000,
        description="Wall-clock budget for a single provider call"
    )
    BREAKER_TRIP_THRESHOLD: int = Field(
        default=3,
        description="Consecutive failures before a provider circuit opens"
    )
    BREAKER_RESET_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Seconds an open circuit waits before allowing a trial call"
    )
    JSON_MAX_RETRIES: int = Field(default=2)

    # Confirmation flow
    NAME_CLARIFICATION_TIMEOUT_SECONDS: int = Field(default=300)
    NAME_CLARIFICATION_MAX_ATTEMPTS: int = Field(default=3)
    NAME_CHOICE_MIN_CONFIDENCE: float = Field(default=0.8)

    # Application Settings
    DEFAULT_TIMEZONE: str = Field(default="Europe/Belgrade")
    LOG_LEVEL: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
