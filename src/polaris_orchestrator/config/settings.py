"""Settings configuration"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Orchestrator settings loaded from the environment and .env"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False,
        validate_assignment=True, populate_by_name=True
    )

    # Application
    app_name: str = Field(default="Polaris Report Orchestrator", validation_alias="APP_NAME")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # API Keys
    openai_api_key: Optional[SecretStr] = Field(default=None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    google_api_key: Optional[SecretStr] = Field(default=None, validation_alias="GOOGLE_API_KEY")
    perplexity_api_key: Optional[SecretStr] = Field(default=None, validation_alias="PERPLEXITY_API_KEY")

    # Base URLs
    openai_base_url: str = Field(default="https://api.openai.com", validation_alias="OPENAI_BASE_URL")
    anthropic_base_url: str = Field(default="https://api.anthropic.com", validation_alias="ANTHROPIC_BASE_URL")
    anthropic_version: str = Field(default="2023-06-01", validation_alias="ANTHROPIC_VERSION")
    google_base_url: str = Field(
        default="https://generativelanguage.googleapis.com", validation_alias="GOOGLE_BASE_URL"
    )
    perplexity_base_url: str = Field(default="https://api.perplexity.ai", validation_alias="PERPLEXITY_BASE_URL")

    # Models
    openai_model: str = Field(default="gpt-4o", validation_alias="OPENAI_MODEL")
    openai_fast_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_FAST_MODEL")
    anthropic_model: str = Field(default="claude-3-5-sonnet-latest", validation_alias="ANTHROPIC_MODEL")
    anthropic_fast_model: str = Field(default="claude-3-5-haiku-latest", validation_alias="ANTHROPIC_FAST_MODEL")
    google_model: str = Field(default="gemini-2.0-flash-exp", validation_alias="GOOGLE_MODEL")
    google_fast_model: str = Field(default="gemini-1.5-flash", validation_alias="GOOGLE_FAST_MODEL")
    perplexity_model: str = Field(default="sonar-pro", validation_alias="PERPLEXITY_MODEL")
    perplexity_fast_model: str = Field(default="sonar", validation_alias="PERPLEXITY_FAST_MODEL")

    # Async job endpoint
    job_endpoint_url: Optional[str] = Field(default=None, validation_alias="JOB_ENDPOINT_URL")

    # Retry
    max_attempts: int = Field(default=3, validation_alias="MAX_ATTEMPTS", ge=1)
    retry_base_delay: float = Field(default=1.0, validation_alias="RETRY_BASE_DELAY", ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, validation_alias="RETRY_BACKOFF_MULTIPLIER", ge=1)
    retry_jitter_ratio: float = Field(default=0.2, validation_alias="RETRY_JITTER_RATIO", ge=0, le=1)
    rate_limit_backoff_factor: float = Field(default=1.0, validation_alias="RATE_LIMIT_BACKOFF_FACTOR", ge=1)
    request_timeout: float = Field(default=60.0, validation_alias="REQUEST_TIMEOUT", gt=0)

    # Job polling
    poll_base_delay: float = Field(default=2.0, validation_alias="POLL_BASE_DELAY", gt=0)
    poll_growth: float = Field(default=1.25, validation_alias="POLL_GROWTH", ge=1)
    poll_cap: float = Field(default=5.0, validation_alias="POLL_CAP", gt=0)
    max_poll_window: float = Field(default=240.0, validation_alias="MAX_POLL_WINDOW", gt=0)
    idempotency_key_ttl: int = Field(default=86400, validation_alias="IDEMPOTENCY_KEY_TTL")

    # Cascade
    job_max_output_tokens: int = Field(default=8096, validation_alias="JOB_MAX_OUTPUT_TOKENS")
    fast_max_output_tokens: int = Field(default=4000, validation_alias="FAST_MAX_OUTPUT_TOKENS")
    fast_timeout: float = Field(default=45.0, validation_alias="FAST_TIMEOUT", gt=0)
    simplified_max_output_tokens: int = Field(default=2500, validation_alias="SIMPLIFIED_MAX_OUTPUT_TOKENS")
    simplified_timeout: float = Field(default=35.0, validation_alias="SIMPLIFIED_TIMEOUT", gt=0)
    minimal_max_output_tokens: int = Field(default=1200, validation_alias="MINIMAL_MAX_OUTPUT_TOKENS")
    minimal_timeout: float = Field(default=25.0, validation_alias="MINIMAL_TIMEOUT", gt=0)
    report_temperature: float = Field(default=0.2, validation_alias="REPORT_TEMPERATURE", ge=0, le=2)

    # Research
    research_max_output_tokens: int = Field(default=2000, validation_alias="RESEARCH_MAX_OUTPUT_TOKENS")
    research_timeout: float = Field(default=75.0, validation_alias="RESEARCH_TIMEOUT", gt=0)
    research_temperature: float = Field(default=0.1, validation_alias="RESEARCH_TEMPERATURE", ge=0, le=2)

    # Cache
    cache_enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    cache_ttl_seconds: int = Field(default=300, validation_alias="CACHE_TTL_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
                raise ValueError("LOG_LEVEL must be a standard logging level name")
        return v

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("json", "console"):
                raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v

    # Properties
    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    @property
    def has_job_endpoint(self) -> bool:
        return bool(self.job_endpoint_url)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
