"""Backoff and isolation settings used by the transaction executor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .classification import ErrorKind

if TYPE_CHECKING:  # pragma: no cover
    from ...core.config import AppConfig


class IsolationLevel(str, Enum):
    """Isolation levels, spelled the way SQLAlchemy expects them."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Linear backoff: ``base(kind) * attempt`` seconds before the next attempt."""

    conflict_backoff: float = 0.1
    contention_backoff: float = 0.2
    isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED
    default_max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        if self.conflict_backoff < 0:
            raise ValueError("conflict_backoff cannot be negative")
        if self.contention_backoff < 0:
            raise ValueError("contention_backoff cannot be negative")
        if self.default_max_retries < 1:
            raise ValueError("default_max_retries must be at least 1")

    def delay_for(self, kind: ErrorKind, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt must be at least 1")
        if kind is ErrorKind.CONCURRENCY:
            return self.conflict_backoff * attempt
        if kind is ErrorKind.CONTENTION:
            return self.contention_backoff * attempt
        raise ValueError(f"{kind.value} failures are not retried")

    @classmethod
    def from_config(cls, config: "AppConfig") -> "RetryPolicy":
        return cls(
            conflict_backoff=config.transaction_conflict_backoff_ms / 1000,
            contention_backoff=config.transaction_contention_backoff_ms / 1000,
            isolation_level=IsolationLevel(config.transaction_isolation_level),
            default_max_retries=config.transaction_max_retries,
        )


__all__ = ["IsolationLevel", "RetryPolicy", "DEFAULT_MAX_RETRIES"]
