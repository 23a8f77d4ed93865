"""Archive scanner configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ScannerConfig(BaseSettings):
    """Streaming scan settings."""

    model_config = {"env_prefix": "MBOX_SCANNER_"}

    chunk_size: int = Field(
        default=65_536,
        gt=0,
        description="Bytes requested from the archive per read",
    )
    preview_length: int = Field(
        default=200,
        ge=0,
        description="Maximum characters kept in a summary preview",
    )
    progress_interval_seconds: float = Field(
        default=0.25,
        ge=0.0,
        description="Minimum seconds between two progress notifications",
    )
    progress_min_step: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Fraction delta that forces a progress notification",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for the persistence hand-off, driven by Tenacity."""

    model_config = {"env_prefix": "MBOX_RETRY_"}

    max_attempts: int = Field(default=3, ge=1, description="Maximum hand-off attempts per batch")
    initial_wait_seconds: float = Field(
        default=0.5,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=10.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class ImportConfig(BaseSettings):
    """Root configuration for an archive import.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MBOX_IMPORT_"}

    batch_size: int = Field(
        default=50,
        gt=0,
        description="Summaries accumulated before each sink hand-off",
    )

    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class LogConfig(BaseSettings):
    """Logging output settings for the command-line entry point."""

    model_config = {"env_prefix": "MBOX_LOG_"}

    json_output: bool = Field(
        default=False,
        description="Emit JSON lines instead of the console renderer",
    )
    level: str = Field(default="INFO", description="Root log level name")
