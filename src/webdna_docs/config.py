"""Configuration models for the documentation server."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_package_version() -> str:
    """Installed distribution version, or a dev marker when run from source."""
    try:
        return version("webdna-docs")
    except PackageNotFoundError:
        return "0.0.0-dev"


class CacheConfig(BaseModel):
    """Per-operation time-to-live for the read-through query cache."""

    search_ttl_seconds: float = Field(default=300.0, ge=0.0)
    document_ttl_seconds: float = Field(default=900.0, ge=0.0)
    categories_ttl_seconds: float = Field(default=1800.0, ge=0.0)
    count_ttl_seconds: float = Field(default=3600.0, ge=0.0)
    default_ttl_seconds: float = Field(default=300.0, ge=0.0)
    max_entries: int | None = Field(default=None, ge=1)

    def ttl_map(self) -> dict[str, float]:
        return {
            "search": self.search_ttl_seconds,
            "get_by_key": self.document_ttl_seconds,
            "list_categories": self.categories_ttl_seconds,
            "count": self.count_ttl_seconds,
            "random_sample": 0.0,
        }


class EngineConfig(BaseModel):
    """Configures request timeouts and worker supervision."""

    default_timeout_seconds: float = Field(default=30.0, gt=0.0)
    list_tools_timeout_seconds: float = Field(default=5.0, gt=0.0)
    invoke_timeout_seconds: float = Field(default=60.0, gt=0.0)
    restart_delay_seconds: float = Field(default=5.0, ge=0.0)
    restart_multiplier: float = Field(default=1.0, ge=1.0)
    max_restart_delay_seconds: float = Field(default=60.0, ge=0.0)
    max_restarts: int | None = Field(default=None, ge=0)
    terminate_grace_seconds: float = Field(default=5.0, ge=0.0)


class ScraperConfig(BaseModel):
    """Configures the documentation site scraper."""

    base_url: str = "https://docs.webdna.us"
    glance_path: str = "/at-a-glance"
    request_delay_seconds: float = Field(default=0.5, ge=0.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    user_agent: str = "webdna-docs-scraper/1.0"


class Settings(BaseSettings):
    """Process settings read from `WEBDNA_*` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WEBDNA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(default=Path("data/webdna_docs.db"))
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    environment: str = "development"
    log_level: str = "INFO"
    log_dir: Path = Field(default=Path("logs"))
    cache_ttl_seconds: float | None = Field(default=None, ge=0.0)
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    shutdown_grace_seconds: float = Field(default=10.0, gt=0.0)
    worker_restart_delay_seconds: float = Field(default=5.0, ge=0.0)
    worker_max_restarts: int | None = Field(default=None, ge=0)

    def cache_config(self) -> CacheConfig:
        """A set `cache_ttl_seconds` replaces every per-operation TTL."""
        if self.cache_ttl_seconds is None:
            return CacheConfig()
        ttl = self.cache_ttl_seconds
        return CacheConfig(
            search_ttl_seconds=ttl,
            document_ttl_seconds=ttl,
            categories_ttl_seconds=ttl,
            count_ttl_seconds=ttl,
            default_ttl_seconds=ttl,
        )

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            invoke_timeout_seconds=self.request_timeout_seconds,
            restart_delay_seconds=self.worker_restart_delay_seconds,
            max_restarts=self.worker_max_restarts,
        )

    def worker_env(self) -> dict[str, str]:
        """Environment overrides handed to a spawned worker process."""
        return {
            "WEBDNA_DATABASE_PATH": str(self.database_path),
            "WEBDNA_LOG_LEVEL": self.log_level,
            "WEBDNA_LOG_DIR": str(self.log_dir),
            "WEBDNA_ENVIRONMENT": self.environment,
        }
