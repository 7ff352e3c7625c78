"""Domain level exceptions and helpers for repository layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm.exc import StaleDataError

__all__ = [
    "AppError",
    "RepositoryError",
    "NotFoundError",
    "ETagMismatchError",
    "ConcurrencyConflictError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "InsufficientStockError",
    "ensure_found",
    "ensure_version",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for application specific errors."""


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class NotFoundError(RepositoryError):
    """Raised when a record could not be located."""


class ETagMismatchError(RepositoryError):
    """Raised when optimistic locking preconditions fail."""


class ConcurrencyConflictError(RepositoryError):
    """Raised when a write lost an optimistic-concurrency race.

    ``entities`` lists the ORM instances whose stored state changed underneath
    the current unit of work; they are reloaded before the next attempt.
    """

    def __init__(self, message: str, *, entities: Iterable[object] = ()) -> None:
        super().__init__(message)
        self.entities: tuple[object, ...] = tuple(entities)


class IntegrityConstraintViolation(RepositoryError):
    """Raised when a database constraint is violated."""


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


class InsufficientStockError(AppError):
    """Raised when a sale would drive a product's stock below zero."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def ensure_found(record: object | None, *, entity: str, identifier: str) -> object:
    """Ensure a record exists, otherwise raise :class:`NotFoundError`."""

    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def ensure_version(*, expected: int, actual: int, entity: str) -> None:
    """Validate that the stored row version matches the caller's snapshot."""

    if expected != actual:
        raise ETagMismatchError(
            f"{entity} precondition failed: expected version {expected}, got {actual}"
        )


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> RepositoryError:
    if isinstance(exc, sa_exc.IntegrityError):
        return IntegrityConstraintViolation(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return DatabaseOperationError(context.format("database operation failed"))
    return RepositoryError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(
    *, entity: str | None = None, conflicting: Iterable[object] = ()
) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones.

    A version-counter mismatch becomes :class:`ConcurrencyConflictError`
    naming ``conflicting``. The original error stays reachable through
    ``__cause__`` so lock and timeout conditions can still be recognised.
    """

    context = _EntityContext(entity)
    try:
        yield
    except StaleDataError as exc:
        raise ConcurrencyConflictError(
            context.format("row changed by a concurrent writer"), entities=conflicting
        ) from exc
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
