"""Application configuration for the POS persistence layer.

Settings are read from ``POS_``-prefixed environment variables (and an
optional ``.env`` file). Defaults target a local SQLite database, which is
how the till runs when no server is configured.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIRECTORY_PLACEHOLDER = "{data_directory}"


def _default_data_directory() -> Path:
    return Path("./var/data")


class AppConfig(BaseSettings):
    """Pydantic settings container for the persistence layer."""

    model_config = SettingsConfigDict(env_prefix="POS_", env_file=".env", extra="ignore")

    database_provider: Literal["sqlite", "postgresql"] = Field(
        default="sqlite",
        description="Database backend the till talks to.",
    )
    database_url: str = Field(
        default=f"sqlite:///{DATA_DIRECTORY_PLACEHOLDER}/pos.db",
        description="SQLAlchemy URL; may reference the data directory placeholder.",
    )
    data_directory: Path = Field(
        default_factory=_default_data_directory,
        description="Directory holding the local database file.",
    )
    sqlite_busy_timeout_ms: int = Field(
        default=10_000,
        ge=0,
        description="How long SQLite waits on a locked database before failing (ms).",
    )
    transaction_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts made by the transaction executor per operation.",
    )
    transaction_conflict_backoff_ms: int = Field(
        default=100,
        ge=0,
        description="Base delay after a concurrency conflict, multiplied by the attempt.",
    )
    transaction_contention_backoff_ms: int = Field(
        default=200,
        ge=0,
        description="Base delay after a lock or timeout, multiplied by the attempt.",
    )
    transaction_isolation_level: Literal[
        "READ COMMITTED",
        "READ UNCOMMITTED",
        "REPEATABLE READ",
        "SERIALIZABLE",
    ] = Field(
        default="READ COMMITTED",
        description="Isolation level requested for every executor transaction.",
    )
    log_level: str = Field(default="INFO", description="Root log level name.")
    log_directory: Path | None = Field(
        default=None,
        description="Directory for rotating log files; console only when unset.",
    )
    log_retain_days: int = Field(
        default=30,
        ge=1,
        description="Days of general logs to keep; transaction and error logs keep longer.",
    )
    enable_transaction_logging: bool = Field(
        default=True,
        description="Write transaction events to a dedicated log file.",
    )
    enable_performance_logging: bool = Field(
        default=False,
        description="Write executor timings to a dedicated log file.",
    )

    def resolve_database_url(self) -> str:
        """Return ``database_url`` with the data directory expanded and created."""

        if DATA_DIRECTORY_PLACEHOLDER not in self.database_url:
            return self.database_url
        directory = Path(os.path.expandvars(str(self.data_directory))).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        return self.database_url.replace(DATA_DIRECTORY_PLACEHOLDER, directory.as_posix())

    def resolve_log_directory(self) -> Path | None:
        if self.log_directory is None:
            return None
        directory = Path(os.path.expandvars(str(self.log_directory))).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        return directory


def load_config() -> AppConfig:
    """Load configuration from the environment."""

    return AppConfig()


__all__ = ["AppConfig", "load_config", "DATA_DIRECTORY_PLACEHOLDER"]
