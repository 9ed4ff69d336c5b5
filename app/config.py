# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import get_settings
#   print(get_settings().PORT)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
# =============================================================================

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings loaded from environment variables.

    Every value has a default, so the service starts with an empty
    environment. The ENVIRONMENT mode drives log verbosity and whether
    error responses carry real stack traces.
    """

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment ('production' redacts stack traces)"
    )

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the HTTP server to"
    )

    PORT: int = Field(
        default=3000,
        ge=0,
        le=65535,
        description="Port for the HTTP server"
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    LOG_LEVEL: str | None = Field(
        default=None,
        description="Override log level (defaults to INFO in production, DEBUG otherwise)"
    )

    LOG_DIR: str | None = Field(
        default=None,
        description="Directory for combined/error/exceptions/rejections logs; console only when unset"
    )

    # -------------------------------------------------------------------------
    # Request Handling
    # -------------------------------------------------------------------------

    MAX_BODY_BYTES: int = Field(
        default=100 * 1024,
        ge=1,
        description="Largest JSON or form body the parser accepts"
    )

    STACK_REDACTION_MARKER: str = Field(
        default="\N{PANCAKES}",
        min_length=1,
        description="Value sent as `stack` in error responses in production"
    )

    SHUTDOWN_TIMEOUT_SEC: float = Field(
        default=10.0,
        ge=0.0,
        description="Grace period for in-flight requests during shutdown"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def resolved_log_level(self) -> int:
        """
        Numeric log level for the service logger.

        An explicit LOG_LEVEL wins; unknown names fall back to INFO.
        """
        if self.LOG_LEVEL:
            level = logging.getLevelName(self.LOG_LEVEL.strip().upper())
            return level if isinstance(level, int) else logging.INFO
        return logging.INFO if self.is_production else logging.DEBUG


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()
