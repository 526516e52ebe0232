from functools import lru_cache
from typing import Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_CACHE_TTL_MINUTES,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIER_DAILY_LIMITS,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
    FAILURE_BASE_DELAY_SECONDS,
    GEMINI_API_URL,
    MIN_REQUEST_INTERVAL_SECONDS,
    RATE_LIMITED_BASE_DELAY_SECONDS,
)

PersistenceBackend = Literal["supabase", "memory"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="", case_sensitive=False
    )

    # Absence is only an error when a call is made, see GeminiGateway
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY")
    )
    gemini_api_url: str = Field(
        default=GEMINI_API_URL, validation_alias=AliasChoices("GEMINI_API_URL")
    )
    gemini_default_model: str = Field(
        default=DEFAULT_GEMINI_MODEL,
        validation_alias=AliasChoices("GEMINI_DEFAULT_MODEL"),
    )

    supabase_url: str = Field(
        default="", validation_alias=AliasChoices("SUPABASE_URL")
    )
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
    )
    persistence_backend: PersistenceBackend = Field(
        default="supabase", validation_alias=AliasChoices("PERSISTENCE_BACKEND")
    )

    app_name: str = "geminigate"
    app_version: str = "1.0.0"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_file_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LOG_FILE_PATH")
    )
    error_log_file_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ERROR_LOG_FILE_PATH")
    )
    log_pretty_console: bool = Field(
        default=False, validation_alias=AliasChoices("LOG_PRETTY_CONSOLE")
    )
    redact_log_fields: Union[List[str], str] = Field(
        default_factory=lambda: [
            "gemini_api_key",
            "supabase_key",
            "apikey",
            "authorization",
            "key",
        ],
        validation_alias=AliasChoices("REDACT_LOG_FIELDS"),
    )
    host: str = "127.0.0.1"
    port: int = Field(default=8787, validation_alias=AliasChoices("PORT"))
    reload: bool = False

    # Shared secret for the HTTP surface; empty disables the check
    gateway_api_key: str = Field(
        default="", validation_alias=AliasChoices("GATEWAY_API_KEY")
    )

    min_request_interval_seconds: float = Field(
        default=MIN_REQUEST_INTERVAL_SECONDS,
        validation_alias=AliasChoices("MIN_REQUEST_INTERVAL_SECONDS"),
    )
    provider_max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        validation_alias=AliasChoices("PROVIDER_MAX_RETRIES"),
    )
    rate_limited_base_delay: float = Field(
        default=RATE_LIMITED_BASE_DELAY_SECONDS,
        validation_alias=AliasChoices("RATE_LIMITED_BASE_DELAY"),
    )
    failure_base_delay: float = Field(
        default=FAILURE_BASE_DELAY_SECONDS,
        validation_alias=AliasChoices("FAILURE_BASE_DELAY"),
    )

    generation_temperature: float = Field(
        default=DEFAULT_TEMPERATURE,
        validation_alias=AliasChoices("GENERATION_TEMPERATURE"),
    )
    generation_max_output_tokens: int = Field(
        default=DEFAULT_MAX_OUTPUT_TOKENS,
        validation_alias=AliasChoices("GENERATION_MAX_OUTPUT_TOKENS"),
    )
    generation_top_p: float = Field(
        default=DEFAULT_TOP_P, validation_alias=AliasChoices("GENERATION_TOP_P")
    )
    generation_top_k: int = Field(
        default=DEFAULT_TOP_K, validation_alias=AliasChoices("GENERATION_TOP_K")
    )

    cache_ttl_minutes: int = Field(
        default=DEFAULT_CACHE_TTL_MINUTES,
        validation_alias=AliasChoices("CACHE_TTL_MINUTES"),
    )
    tier_daily_limits: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_TIER_DAILY_LIMITS),
        validation_alias=AliasChoices("TIER_DAILY_LIMITS"),
    )

    # HTTP timeout configuration
    http_timeout: float = Field(
        default=60.0, validation_alias=AliasChoices("HTTP_TIMEOUT")
    )
    http_connect_timeout: float = Field(
        default=10.0, validation_alias=AliasChoices("HTTP_CONNECT_TIMEOUT")
    )
    persistence_timeout: float = Field(
        default=10.0, validation_alias=AliasChoices("PERSISTENCE_TIMEOUT")
    )

    # Connection pool configuration
    pool_max_keepalive_connections: int = Field(
        default=20, validation_alias=AliasChoices("POOL_MAX_KEEPALIVE_CONNECTIONS")
    )
    pool_max_connections: int = Field(
        default=100, validation_alias=AliasChoices("POOL_MAX_CONNECTIONS")
    )
    pool_keepalive_expiry: int = Field(
        default=60, validation_alias=AliasChoices("POOL_KEEPALIVE_EXPIRY")
    )

    @field_validator("redact_log_fields")
    @classmethod
    def parse_comma_separated(cls, v: Union[List[str], str]) -> List[str]:
        """Parse comma-separated string values into lists.

        Handles both string inputs (splitting by commas) and already-list inputs.
        Empty strings are converted to empty lists.
        """
        if isinstance(v, str):
            if v.strip() == "":
                return []
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("provider_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"provider_max_retries must be at least 1, got {v}")
        return v

    @field_validator(
        "min_request_interval_seconds", "rate_limited_base_delay", "failure_base_delay"
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"delay settings must be non-negative, got {v}")
        return v

    @field_validator("tier_daily_limits")
    @classmethod
    def validate_tier_limits(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Tier names are matched case-sensitively, like the profile column."""
        for tier, limit in v.items():
            if limit < 0:
                raise ValueError(f"daily limit for tier {tier!r} must be >= 0")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
