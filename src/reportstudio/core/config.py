"""Configuration management.

Uses pydantic-settings for type-safe configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_config_dir() -> Path:
    """Find the bundled config directory (null values, type literals)."""
    # config.py -> core/ -> reportstudio/
    return Path(__file__).resolve().parent.parent / "config"


class Settings(BaseSettings):
    """Engine settings.

    All settings can be overridden via environment variables.
    Prefix: REPORTSTUDIO_
    """

    model_config = SettingsConfigDict(
        env_prefix="REPORTSTUDIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Metadata store (SQLAlchemy)
    database_url: str = Field(
        default="sqlite:///./reportstudio.db",
        description="SQLAlchemy URL of the metadata store",
    )

    # DuckDB (delimited file parsing)
    duckdb_memory_limit: str = Field(
        default="1GB",
        description="Memory limit for the in-process DuckDB connection",
    )

    # Configuration paths
    config_path: Path = Field(
        default_factory=_find_config_dir,
        description="Path to YAML configuration (null values, type literals)",
    )

    # Row caps
    max_query_rows: int = Field(
        default=10_000,
        ge=1,
        description="Hard cap on rows returned by any fetch or raw query",
    )
    default_fetch_limit: int = Field(
        default=1_000,
        ge=1,
        description="Row limit used when fetch options carry none",
    )

    # Raw queries
    query_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Raw query timeout enforced per provider",
    )
    query_log_max_chars: int = Field(
        default=1_000,
        description="Maximum characters of query text kept in logs",
    )

    # Cache
    cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Default TTL for cached fetch/compute results",
    )
    cache_sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval of the background sweep of expired entries",
    )

    # Profiling
    profile_sample_size: int = Field(
        default=10_000,
        description="Maximum rows profiled per call (0 = all)",
    )
    preview_rows: int = Field(
        default=100,
        ge=1,
        description="Default number of rows returned by a pipeline preview",
    )

    # API
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8000)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")  # 'json' or 'console'


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
