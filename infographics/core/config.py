"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


DEFAULT_FOOTER_ATTRIBUTION = "Presentation made by InfogrAIphics by P2Enjoy SAS - Copyright 2025"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Every value can be overridden by an environment variable of the same
    name (case-insensitive) or through a ``.env`` file.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./infographics.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection from the pool before raising"
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Seconds before a connection is recycled (prevents stale connections)"
    )

    # LLM provider
    # LiteLLM model strings, e.g. "openai/o4-mini", "openrouter/anthropic/claude-sonnet-4".
    # Empty LLM_API_KEY = generation disabled; the worker refuses to start.
    llm_api_key: str = Field(
        default="",
        description="API key for the LLM provider"
    )
    llm_api_base: str = Field(
        default="",
        description="Base URL for the LLM provider (optional, for custom endpoints)"
    )
    generation_model: str = Field(
        default="openai/o4-mini",
        description="LiteLLM model used to generate page HTML"
    )
    repair_model: str = Field(
        default="openai/gpt-4.1-mini",
        description="LiteLLM model used to repair validation errors (falls back to generation_model if empty)"
    )
    generation_max_tokens: int = Field(
        default=100_000,
        description="Completion token cap for page generation"
    )
    repair_max_tokens: int = Field(
        default=32_000,
        description="Completion token cap for a repair call"
    )
    llm_timeout: int = Field(
        default=600,
        description="Seconds before an LLM request is abandoned"
    )
    footer_attribution: str = Field(
        default=DEFAULT_FOOTER_ATTRIBUTION,
        description="Footer text every generated page must end with"
    )

    # Validate / repair loop
    max_html_fix_iter: int = Field(
        default=5,
        ge=1,
        description="Maximum repair rounds before best-effort HTML is accepted"
    )
    repair_error_budget: int = Field(
        default=6000,
        description="Maximum characters of serialized errors sent to the repair model"
    )
    markup_validator_url: str = Field(
        default="https://validator.w3.org/nu/?out=json",
        description="Nu HTML checker endpoint returning JSON messages"
    )
    markup_validator_timeout: float = Field(
        default=30.0,
        description="Seconds before the markup validator request is abandoned"
    )
    runtime_settle_ms: int = Field(
        default=1000,
        description="Milliseconds to wait after load for asynchronous script/resource failures"
    )
    runtime_timeout: float = Field(
        default=20.0,
        description="Hard cap in seconds for one headless-browser runtime check"
    )

    # Worker
    worker_poll_interval: float = Field(
        default=5.0,
        description="Seconds between queue polls when the queue is empty"
    )
    worker_error_backoff: float = Field(
        default=10.0,
        description="Seconds to wait after an unexpected worker loop error"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    def get_repair_model(self) -> str:
        """Model used by the repair agent; defaults to the generation model."""
        return self.repair_model or self.generation_model

    def is_llm_configured(self) -> bool:
        """Check if page generation can run (needs a model and an API key)."""
        return bool(self.generation_model and self.llm_api_key)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if required settings are missing.
        In development, returns quietly and main.py logs warnings.

        Raises:
            ConfigurationError: If production config is incomplete.
        """
        errors: list[str] = []

        if not self.llm_api_key:
            errors.append("LLM_API_KEY is empty. Page generation cannot run.")

        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is invalid:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
