"""Terminal errors raised by the transaction executor."""

from __future__ import annotations

from enum import Enum

from ...exceptions import AppError


class TransactionFailure(str, Enum):
    """Why an invocation gave up."""

    NON_TRANSIENT = "non_transient"
    RETRIES_EXHAUSTED = "retries_exhausted"


class TransactionError(AppError):
    """Raised once per failed invocation, after every rollback has been applied.

    ``cause`` holds the last underlying failure and is also chained as
    ``__cause__``. Callers that only need a message can use ``str(error)``.
    """

    def __init__(
        self,
        message: str,
        *,
        operation_name: str,
        attempts: int,
        cause: BaseException | None,
        reason: TransactionFailure,
    ) -> None:
        super().__init__(message)
        self.operation_name = operation_name
        self.attempts = attempts
        self.cause = cause
        self.reason = reason

    @property
    def retries_exhausted(self) -> bool:
        return self.reason is TransactionFailure.RETRIES_EXHAUSTED


class RollbackError(AppError):
    """Raised when rolling back a failed attempt itself fails."""

    def __init__(self, message: str, *, original: BaseException) -> None:
        super().__init__(message)
        self.original = original


class ReloadError(AppError):
    """Raised when conflicting entities could not be reloaded before a retry."""


__all__ = ["TransactionError", "TransactionFailure", "RollbackError", "ReloadError"]
