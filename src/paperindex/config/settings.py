"""Application settings: Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. Environment variables (PAPERINDEX_ prefix)
  2. YAML config file (if specified)
  3. Default values
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class BackendConfig(BaseModel):
    """Configuration for a single search backend."""

    enabled: bool = Field(default=True, description="Whether this backend is active")
    hosts: list[str] = Field(default_factory=list, description="Backend host URLs")
    index: str = Field(default="papers", description="Index name / UID")
    username: str | None = Field(default=None, description="Authentication username")
    password: str | None = Field(default=None, description="Authentication password")
    api_key: str | None = Field(default=None, description="API key authentication")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    verify_certs: bool = Field(default=True, description="Verify TLS certificates")
    extra: dict[str, Any] = Field(default_factory=dict, description="Backend-specific options")

    @field_validator("hosts", mode="before")
    @classmethod
    def _parse_hosts(cls, v: Any) -> list[str]:
        """Parse hosts from JSON string (env var) or list."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(h) for h in parsed]
            except (json.JSONDecodeError, TypeError):
                pass
            # Single host as plain string
            return [v] if v else []
        return list(v)


def _default_backends() -> dict[str, BackendConfig]:
    return {
        "meilisearch": BackendConfig(hosts=["http://localhost:7700"]),
        "opensearch": BackendConfig(hosts=["https://localhost:9200"]),
    }


class SearchSettings(BaseModel):
    """Search backend selection and configuration."""

    backend: str = Field(default="meilisearch", description="Active backend: meilisearch, opensearch")
    backends: dict[str, BackendConfig] = Field(default_factory=_default_backends, description="Backend configurations")

    @field_validator("backend", mode="after")
    @classmethod
    def _normalize_backend(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def active(self) -> BackendConfig | None:
        return self.backends.get(self.backend)


class DatabaseSettings(BaseModel):
    """Relational store configuration."""

    url: str = Field(default="sqlite+aiosqlite:///./papers.db", description="SQLAlchemy async database URL")
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True, description="Test connections before use")


class ReindexSettings(BaseModel):
    """Full reindex behaviour."""

    batch_size: int = Field(default=100, ge=1, le=10_000, description="Papers indexed concurrently per batch")


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


class Settings(BaseSettings):
    """Root application settings.

    Configuration is loaded from environment variables with the PAPERINDEX_ prefix.
    Nested settings use double underscores.

    Example:
        PAPERINDEX_SEARCH__BACKEND=opensearch
        PAPERINDEX_DATABASE__URL=postgresql+asyncpg://user:pass@db/papers
        PAPERINDEX_REINDEX__BATCH_SIZE=200
    """

    model_config = {
        "env_prefix": "PAPERINDEX_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Component settings
    search: SearchSettings = Field(default_factory=SearchSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    reindex: ReindexSettings = Field(default_factory=ReindexSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are used as defaults; environment variables
        still take precedence.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)
