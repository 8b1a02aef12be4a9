"""Configuration management for pharmacy payment extraction.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
PPE_ prefix, or via a .env file in the project root.

Environment Variables:
    PPE_MAX_FILE_SIZE_MB: Maximum upload size in MB (default: 10)
    PPE_HIGH_VALUE_THRESHOLD: Qualifying GIC for a high value item, at least
        200 (default: 200)
    PPE_MARKER_SCAN_ROWS: Rows searched for the report title (default: 20)
    PPE_HEADER_MARKER_OFFSET: Rows between report title and header (default: 6)
    PPE_HEADER_SCAN_ROWS: Rows searched for column headers (default: 30)
    PPE_DIAGNOSTIC_SCAN_ROWS: Rows per sheet inspected when no report
        sheet is found (default: 20)
    PPE_FALLBACK_START_ROW: First row read by the structural fallback (default: 10)
    PPE_FALLBACK_SCAN_ROWS: Rows read by the structural fallback (default: 50)
    PPE_LOG_LEVEL: Logging level (default: INFO)
    PPE_DEBUG: Enable debug mode (default: false)
    PPE_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    PPE_SERVER_HOST: Server bind host (default: 0.0.0.0)
    PPE_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pharmacy_payment_extraction.services.high_value.models import (
    HIGH_VALUE_THRESHOLD,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        PPE_LOG_LEVEL=DEBUG
        PPE_MAX_FILE_SIZE_MB=25
    """

    model_config = SettingsConfigDict(
        env_prefix="PPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_file_size_mb: int = 10
    """Maximum spreadsheet upload size in megabytes."""

    # =========================================================================
    # High Value Extraction Settings
    # =========================================================================

    high_value_threshold: float = HIGH_VALUE_THRESHOLD
    """Minimum GIC (in pounds) for a line item to count as high value."""

    marker_scan_rows: int = 20
    """Rows searched for the HIGH VALUE REPORT title."""

    header_marker_offset: int = 6
    """Rows between the report title and the column header row."""

    header_scan_rows: int = 30
    """Rows searched for a header naming the product and GIC columns."""

    diagnostic_scan_rows: int = 20
    """Rows per sheet inspected for report markers when no sheet name matches."""

    fallback_start_row: int = 10
    """Earliest row read by the structural fallback."""

    fallback_scan_rows: int = 50
    """Maximum rows read by the structural fallback."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional error details."""

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

    @field_validator("high_value_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate the threshold never admits items below the report floor."""
        if v < HIGH_VALUE_THRESHOLD:
            raise ValueError(
                f"high_value_threshold must be at least {HIGH_VALUE_THRESHOLD}, "
                f"got {v}"
            )
        return v

    @field_validator(
        "marker_scan_rows",
        "header_scan_rows",
        "diagnostic_scan_rows",
        "fallback_scan_rows",
    )
    @classmethod
    def validate_scan_rows(cls, v: int) -> int:
        """Validate scan windows cover at least one row."""
        if v < 1:
            raise ValueError(f"Scan row limits must be at least 1, got {v}")
        return v

    @field_validator("header_marker_offset", "fallback_start_row")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Row offsets must not be negative, got {v}")
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

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary suitable for logging."""
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "high_value_threshold": self.high_value_threshold,
            "marker_scan_rows": self.marker_scan_rows,
            "header_marker_offset": self.header_marker_offset,
            "header_scan_rows": self.header_scan_rows,
            "diagnostic_scan_rows": self.diagnostic_scan_rows,
            "fallback_start_row": self.fallback_start_row,
            "fallback_scan_rows": self.fallback_scan_rows,
            "log_level": self.log_level,
            "debug": self.debug,
            "cors_origins": self.cors_origins,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Log warnings for settings that are valid but unusual.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if s.cors_origins == "*" and not s.debug:
        logger.warning(
            "CORS is configured to allow all origins (*). "
            "Consider restricting this in production."
        )

    if s.high_value_threshold != HIGH_VALUE_THRESHOLD:
        logger.warning(
            f"High value threshold overridden to {s.high_value_threshold}; "
            "payment schedules report items from 200."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"max_file_size_mb={s.max_file_size_mb}, "
        f"high_value_threshold={s.high_value_threshold}"
    )


# Create the global settings instance
settings = Settings()
