"""Configuration management for spreadsheet chat.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
SC_ prefix, or via a .env file in the project root.

Environment Variables:
    SC_MAX_FILE_SIZE_MB: Maximum spreadsheet upload size in MB (default: 10)
    SC_REMOTE_EXPORT_URL_TEMPLATE: CSV export URL template with an {id} field
    SC_REMOTE_TIMEOUT_SECONDS: Timeout for remote CSV fetches (default: 30)
    SC_OPENAI_API_KEY: OpenAI API key (required for analysis)
    SC_OPENAI_MODEL: OpenAI model used for analysis (default: gpt-4o)
    SC_OPENAI_TEMPERATURE: LLM temperature setting (default: 0.2)
    SC_OPENAI_MAX_TOKENS: Maximum tokens for LLM responses (default: 2048)
    SC_SESSION_TTL_MINUTES: Idle time before a chat session expires (default: 120)
    SC_LOG_LEVEL: Logging level (default: INFO)
    SC_DEBUG: Enable debug mode (default: false)
    SC_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    SC_SERVER_HOST: Server bind host (default: 0.0.0.0)
    SC_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from typing import Any

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXPORT_URL_TEMPLATE = (
    "https://docs.google.com/spreadsheets/d/{id}/export?format=csv"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        SC_OPENAI_API_KEY=sk-...
        SC_LOG_LEVEL=DEBUG
        SC_MAX_FILE_SIZE_MB=25
    """

    model_config = SettingsConfigDict(
        env_prefix="SC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Ingestion Settings
    # =========================================================================

    max_file_size_mb: int = 10
    """Maximum spreadsheet size in megabytes, local or remote."""

    remote_export_url_template: str = DEFAULT_EXPORT_URL_TEMPLATE
    """CSV export URL for remote sheets; ``{id}`` is replaced by the sheet id."""

    remote_timeout_seconds: float = 30.0
    """Timeout applied to the single remote fetch attempt."""

    # =========================================================================
    # OpenAI / LLM Settings
    # =========================================================================

    openai_api_key: SecretStr = SecretStr("")
    """OpenAI API key. Required for the analysis collaborator."""

    openai_model: str = "gpt-4o"
    """OpenAI model used to answer questions about the workbook."""

    openai_temperature: float = 0.2
    """Temperature for LLM sampling."""

    openai_max_tokens: int = 2048
    """Maximum tokens for LLM response generation."""

    # =========================================================================
    # Session Settings
    # =========================================================================

    session_ttl_minutes: int = 120
    """Idle minutes before an in-memory chat session is discarded."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins, or * for all."""

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_file_size(cls, v: int) -> int:
        """Validate file size is positive and reasonable."""
        if not 1 <= v <= 500:
            raise ValueError(f"max_file_size_mb must be between 1 and 500, got {v}")
        return v

    @field_validator("remote_export_url_template")
    @classmethod
    def validate_export_template(cls, v: str) -> str:
        """Validate the export template has a placeholder for the sheet id."""
        if "{id}" not in v:
            raise ValueError("remote_export_url_template must contain '{id}'")
        return v

    @field_validator("remote_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"remote_timeout_seconds must be positive, got {v}")
        return v

    @field_validator("openai_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"openai_temperature must be between 0 and 2, got {v}")
        return v

    @field_validator("session_ttl_minutes")
    @classmethod
    def validate_session_ttl(cls, v: int) -> int:
        """Validate session TTL is positive."""
        if v < 1:
            raise ValueError(f"session_ttl_minutes must be at least 1, got {v}")
        return v

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def session_ttl_seconds(self) -> int:
        """Get session TTL in seconds."""
        return self.session_ttl_minutes * 60

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def get_openai_api_key(self) -> str:
        """Get the OpenAI API key value.

        Returns:
            The API key string. Returns empty string if not set.
        """
        return self.openai_api_key.get_secret_value()

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary with sensitive values masked.

        Returns:
            Dictionary representation with API keys masked.
        """
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "remote_export_url_template": self.remote_export_url_template,
            "remote_timeout_seconds": self.remote_timeout_seconds,
            "openai_api_key": "***" if self.get_openai_api_key() else "(not set)",
            "openai_model": self.openai_model,
            "openai_temperature": self.openai_temperature,
            "openai_max_tokens": self.openai_max_tokens,
            "session_ttl_minutes": self.session_ttl_minutes,
            "log_level": self.log_level,
            "debug": self.debug,
            "cors_origins": self.cors_origins,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Validate settings on application startup.

    Emits warnings for configuration that works but is not production ready.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if not s.get_openai_api_key():
        logger.warning(
            "OPENAI_API_KEY is not configured. Questions about uploaded "
            "workbooks will be answered with an error message. "
            "Set SC_OPENAI_API_KEY environment variable."
        )

    if s.cors_origins == "*" and not s.debug:
        logger.warning(
            "CORS is configured to allow all origins (*). "
            "Consider restricting this in production."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"max_file_size_mb={s.max_file_size_mb}, model={s.openai_model}"
    )


# Create the global settings instance
settings = Settings()
