"""Runtime settings for etfspine.

Read from ``ETFSPINE_*`` environment variables and an optional ``.env``
file via pydantic-settings; CLI options override individual fields.

Examples:
    >>> from etfspine.core.settings import EtfSpineSettings
    >>> EtfSpineSettings(target_url="memory://").store_backend
    'memory'

Tags:
    settings, configuration, pydantic, environment, etfspine
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from etfspine.core.errors import ConfigError

MEMORY_URL = "memory://"


class EtfSpineSettings(BaseSettings):
    """Settings shared by the library entry points and the CLI.

    Fields
    ──────
    source_url         : SQLAlchemy URL of the relational source database
                         (default: SQLite file ``etf_source.db`` in ``data_dir``)
    target_url         : ``memory://`` or a SQLAlchemy URL for the SQL-backed document store
    batch_size         : Rows read per query during migration
    enforce_references : Check dropped foreign keys in the service layer
    fail_fast          : Abort a migration on the first rejected row
    log_level          : Structlog log level
    log_json           : JSON logs (None = auto, JSON when stderr is not a tty)
    data_dir           : Default directory for SQLite files created by the CLI
    """

    model_config = SettingsConfigDict(
        env_prefix="ETFSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Databases ────────────────────────────────────────────────
    source_url: str | None = None
    target_url: str = MEMORY_URL

    # ── Integrity / migration ────────────────────────────────────
    batch_size: int = Field(default=500, gt=0)
    enforce_references: bool = True
    fail_fast: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".etfspine",
        description="Directory for SQLite files created by the CLI",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("target_url", "source_url")
    @classmethod
    def _validate_url(cls, v: str | None) -> str | None:
        if v is not None and "://" not in v:
            raise ValueError(f"Expected a URL with a scheme, got {v!r}")
        return v

    @model_validator(mode="after")
    def _default_source_url(self) -> EtfSpineSettings:
        if self.source_url is None:
            self.source_url = self.default_source_url
        return self

    @property
    def default_source_url(self) -> str:
        """SQLite URL of ``etf_source.db`` inside ``data_dir``."""
        return f"sqlite:///{self.data_dir / 'etf_source.db'}"

    @property
    def store_backend(self) -> str:
        """``memory`` or ``sql``."""
        return "memory" if self.target_url.startswith("memory:") else "sql"


def get_settings(**overrides: object) -> EtfSpineSettings:
    """Build settings, dropping ``None`` overrides so env values survive.

    Raises:
        ConfigError: a value (from env or *overrides*) is invalid.
    """
    try:
        return EtfSpineSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}", cause=exc) from exc


__all__ = ["EtfSpineSettings", "MEMORY_URL", "get_settings"]
