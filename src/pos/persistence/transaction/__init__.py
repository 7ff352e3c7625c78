"""Retrying transaction executor and its collaborators."""

from .classification import (
    ErrorClassifier,
    ErrorKind,
    LOCK_MARKERS,
    classify_error,
    conflict_entities,
    innermost_cause,
    is_lock_message,
    make_classifier,
)
from .errors import ReloadError, RollbackError, TransactionError, TransactionFailure
from .manager import AsyncTransactionManager, TransactionManager
from .policy import IsolationLevel, RetryPolicy
from .store import (
    AsyncSqlAlchemyStore,
    AsyncTransactionalStore,
    SqlAlchemyStore,
    TransactionalStore,
    TransactionHandle,
)

__all__ = [
    "AsyncSqlAlchemyStore",
    "AsyncTransactionManager",
    "AsyncTransactionalStore",
    "ErrorClassifier",
    "ErrorKind",
    "IsolationLevel",
    "LOCK_MARKERS",
    "ReloadError",
    "RetryPolicy",
    "RollbackError",
    "SqlAlchemyStore",
    "TransactionError",
    "TransactionFailure",
    "TransactionHandle",
    "TransactionManager",
    "TransactionalStore",
    "classify_error",
    "conflict_entities",
    "innermost_cause",
    "is_lock_message",
    "make_classifier",
]
