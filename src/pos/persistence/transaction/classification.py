"""Sort executor failures into transient and fatal kinds.

Lock and timeout detection relies on the text the database driver puts in
its error message. The detector is a plain callable so a store exposing
structured error codes can swap it out via :func:`make_classifier`.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm.exc import StaleDataError

from ...exceptions import ConcurrencyConflictError, DatabaseOperationError


class ErrorKind(str, Enum):
    CONCURRENCY = "concurrency"
    CONTENTION = "contention"
    NON_TRANSIENT = "non_transient"


LOCK_MARKERS: tuple[str, ...] = ("database is locked", "lock", "timeout", "deadlock")

CONFLICT_ERRORS: tuple[type[BaseException], ...] = (
    ConcurrencyConflictError,
    StaleDataError,
)

UPDATE_ERRORS: tuple[type[BaseException], ...] = (
    sa_exc.DBAPIError,
    sa_exc.TimeoutError,
    DatabaseOperationError,
)

ErrorClassifier = Callable[[BaseException], ErrorKind]
LockDetector = Callable[[str], bool]


def is_lock_message(message: str) -> bool:
    """Return ``True`` when ``message`` reads like a lock, timeout or deadlock."""

    lowered = message.lower()
    return any(marker in lowered for marker in LOCK_MARKERS)


def innermost_cause(exc: BaseException) -> BaseException:
    """Follow explicit causes (and DB-API ``orig`` errors) down to the root."""

    current = exc
    seen = {id(exc)}
    while True:
        nested = current.__cause__
        if nested is None and isinstance(current, sa_exc.DBAPIError):
            nested = current.orig
        if nested is None or id(nested) in seen:
            return current
        seen.add(id(nested))
        current = nested


def _failure_message(exc: BaseException) -> str:
    inner = innermost_cause(exc)
    return str(inner) or str(exc)


def conflict_entities(exc: BaseException) -> tuple[object, ...]:
    """Return the entities an optimistic-concurrency error asks to reload."""

    return tuple(getattr(exc, "entities", ()) or ())


def make_classifier(
    lock_detector: LockDetector = is_lock_message,
    *,
    conflict_errors: tuple[type[BaseException], ...] = CONFLICT_ERRORS,
    update_errors: tuple[type[BaseException], ...] = UPDATE_ERRORS,
) -> ErrorClassifier:
    """Build a classifier; only ``update_errors`` are inspected for lock text."""

    def classify(exc: BaseException) -> ErrorKind:
        if isinstance(exc, conflict_errors):
            return ErrorKind.CONCURRENCY
        if isinstance(exc, update_errors) and lock_detector(_failure_message(exc)):
            return ErrorKind.CONTENTION
        return ErrorKind.NON_TRANSIENT

    return classify


classify_error: ErrorClassifier = make_classifier()


__all__ = [
    "ErrorKind",
    "ErrorClassifier",
    "LockDetector",
    "LOCK_MARKERS",
    "classify_error",
    "conflict_entities",
    "innermost_cause",
    "is_lock_message",
    "make_classifier",
]
