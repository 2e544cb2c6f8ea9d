"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Host processes embedding the
    pipeline should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/staging/production).
        debug: Enable verbose debugging output.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        store_dir: Directory backing the JSON ticker store.
        debounce_window_sec: Quiet window used to coalesce re-scan requests.
        crawl_cache_ttl_sec: How long a (symbol, source) crawl suppresses repeats.
        label_max_length: Longest text accepted as a table-row label.
        inline_label_max_length: Longest text accepted as an inline prose label.
        prose_max_length: Free-text values longer than this are treated as prose.
        prose_clause_min_length: Multi-clause values longer than this are prose.
        short_token_max_length: Longest bare alphabetic token accepted as a value.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="TickerLens", description="Application identifier")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Persistence
    store_dir: Path = Field(default=Path("ticker_store"), description="JSON store directory")

    # Scheduling
    debounce_window_sec: float = Field(
        default=0.75, ge=0.0, le=60.0, description="Re-scan coalescing window"
    )
    crawl_cache_ttl_sec: float = Field(
        default=300.0, gt=0.0, le=86400.0, description="Crawl dedup TTL"
    )

    # Extraction Heuristics
    label_max_length: int = Field(
        default=48, ge=8, le=200, description="Max table-row label length"
    )
    inline_label_max_length: int = Field(
        default=40, ge=8, le=200, description="Max inline prose label length"
    )
    prose_max_length: int = Field(
        default=140, ge=20, le=2000, description="Free-text prose length cutoff"
    )
    prose_clause_min_length: int = Field(
        default=80, ge=10, le=2000, description="Multi-clause prose length cutoff"
    )
    short_token_max_length: int = Field(
        default=24, ge=1, le=200, description="Max bare alphabetic token length"
    )

    @field_validator("log_dir", "store_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_prose_cutoffs(self) -> "GlobalConfig":
        """Ensure the clause cutoff sits below the hard prose cutoff."""
        if self.prose_clause_min_length > self.prose_max_length:
            raise ValueError(
                "prose_clause_min_length must not exceed prose_max_length"
            )
        return self


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
