"""Retrying transaction executor for POS business operations.

Each invocation runs its operation inside a fresh transaction per attempt.
Optimistic-concurrency conflicts and lock/timeout contention are rolled back
and retried with linear backoff; anything else is rolled back and raised at
once as :class:`TransactionError`. At most one transaction handle is open at
a time, and every handle is released before the next attempt starts.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..logging import AppLogger, TransactionLogger
from .classification import ErrorClassifier, ErrorKind, classify_error, conflict_entities
from .errors import ReloadError, RollbackError, TransactionError, TransactionFailure
from .policy import RetryPolicy
from .store import (
    AsyncTransactionHandle,
    AsyncTransactionalStore,
    TransactionHandle,
    TransactionalStore,
)

T = TypeVar("T")

_RETRY_MESSAGES = {
    ErrorKind.CONCURRENCY: "Concurrency conflict in {operation} (attempt {attempt}/{max_retries})",
    ErrorKind.CONTENTION: "Database locked during {operation} (attempt {attempt}/{max_retries})",
}


class _ExecutorBase:
    """Logging and failure decisions shared by the sync and async executors."""

    def __init__(
        self,
        *,
        logger: TransactionLogger | None,
        classifier: ErrorClassifier,
        policy: RetryPolicy | None,
    ) -> None:
        self._logger: TransactionLogger = logger or AppLogger()
        self._classifier = classifier
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _resolve_max_retries(self, max_retries: int | None) -> int:
        resolved = self._policy.default_max_retries if max_retries is None else max_retries
        if resolved < 1:
            raise ValueError("max_retries must be at least 1")
        return resolved

    def _log_start(self, operation_name: str, attempt: int, max_retries: int) -> None:
        self._logger.transaction(
            operation_name,
            f"Starting transaction (attempt {attempt}/{max_retries})",
            attempt=attempt,
            max_retries=max_retries,
        )

    def _log_committed(self, operation_name: str, attempt: int, max_retries: int) -> None:
        self._logger.transaction(
            operation_name,
            f"Transaction committed successfully on attempt {attempt}",
            attempt=attempt,
            max_retries=max_retries,
        )

    def _log_elapsed(self, operation_name: str, started: float, attempt: int) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        self._logger.performance(operation_name, elapsed_ms, attempts=attempt)

    def _log_release_failure(
        self, exc: BaseException, operation_name: str, *, committed: bool
    ) -> None:
        # Logged, never raised: the attempt keeps its own outcome.
        self._logger.error(operation_name, exc, stage="release", committed=committed)

    def _classify(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, RollbackError):
            return ErrorKind.NON_TRANSIENT
        return self._classifier(exc)

    def _log_retry(
        self,
        kind: ErrorKind,
        exc: BaseException,
        operation_name: str,
        attempt: int,
        max_retries: int,
    ) -> None:
        message = _RETRY_MESSAGES[kind].format(
            operation=operation_name, attempt=attempt, max_retries=max_retries
        )
        self._logger.warning(
            message,
            operation=operation_name,
            attempt=attempt,
            max_retries=max_retries,
            kind=kind.value,
            error=str(exc),
        )

    def _fatal(
        self,
        exc: BaseException,
        operation_name: str,
        attempt: int,
        max_retries: int,
    ) -> TransactionError:
        self._logger.error(operation_name, exc, attempt=attempt, max_retries=max_retries)
        return TransactionError(
            f"Transaction failed for operation '{operation_name}'",
            operation_name=operation_name,
            attempts=attempt,
            cause=exc,
            reason=TransactionFailure.NON_TRANSIENT,
        )

    def _exhausted(
        self,
        last_error: BaseException | None,
        operation_name: str,
        max_retries: int,
    ) -> TransactionError:
        message = (
            f"Transaction failed after {max_retries} attempts for operation '{operation_name}'"
        )
        self._logger.critical(
            message,
            last_error,
            operation=operation_name,
            attempts=max_retries,
            max_retries=max_retries,
        )
        return TransactionError(
            message,
            operation_name=operation_name,
            attempts=max_retries,
            cause=last_error,
            reason=TransactionFailure.RETRIES_EXHAUSTED,
        )


class TransactionManager(_ExecutorBase):
    """Synchronous retrying transaction executor."""

    def __init__(
        self,
        store: TransactionalStore,
        *,
        logger: TransactionLogger | None = None,
        classifier: ErrorClassifier = classify_error,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(logger=logger, classifier=classifier, policy=policy)
        self._store = store
        self._sleep = sleep

    def run(
        self,
        operation: Callable[[], T],
        operation_name: str,
        max_retries: int | None = None,
    ) -> T:
        """Run ``operation`` in a transaction, retrying transient failures.

        ``operation`` may be invoked once per attempt, so it must be safe to
        repeat. Returns its result after a single successful commit.

        Raises:
            TransactionError: on a non-transient failure or once every attempt
                has failed transiently.
            ValueError: if ``max_retries`` is below 1.
        """

        max_retries = self._resolve_max_retries(max_retries)
        started = time.perf_counter()
        attempt = 0
        last_error: BaseException | None = None
        while attempt < max_retries:
            attempt += 1
            self._log_start(operation_name, attempt, max_retries)
            try:
                result = self._attempt(operation, operation_name)
            except Exception as exc:
                last_error = exc
                kind = self._classify(exc)
                if kind is ErrorKind.NON_TRANSIENT:
                    raise self._fatal(exc, operation_name, attempt, max_retries) from exc
                self._log_retry(kind, exc, operation_name, attempt, max_retries)
                if attempt < max_retries:
                    self._prepare_retry(kind, exc, operation_name, attempt, max_retries)
                continue
            self._log_committed(operation_name, attempt, max_retries)
            self._log_elapsed(operation_name, started, attempt)
            return result

        raise self._exhausted(last_error, operation_name, max_retries) from last_error

    def run_void(
        self,
        operation: Callable[[], Any],
        operation_name: str,
        max_retries: int | None = None,
    ) -> None:
        """Variant of :meth:`run` for operations without a meaningful result."""

        def _discarding() -> bool:
            operation()
            return True

        self.run(_discarding, operation_name, max_retries)

    def _attempt(self, operation: Callable[[], T], operation_name: str) -> T:
        handle: TransactionHandle | None = None
        committed = False
        try:
            handle = self._store.begin(self._policy.isolation_level)
            result = operation()
            handle.commit()
            committed = True
            return result
        except Exception as exc:
            # begin() may fail before a handle exists; nothing to roll back then.
            if handle is not None:
                try:
                    handle.rollback()
                except Exception as rollback_exc:
                    raise RollbackError(
                        f"Rollback failed after {type(exc).__name__}", original=exc
                    ) from rollback_exc
            raise
        finally:
            if handle is not None:
                self._release(handle, operation_name, committed=committed)

    def _release(
        self, handle: TransactionHandle, operation_name: str, *, committed: bool
    ) -> None:
        try:
            handle.release()
        except Exception as exc:
            self._log_release_failure(exc, operation_name, committed=committed)

    def _prepare_retry(
        self,
        kind: ErrorKind,
        exc: BaseException,
        operation_name: str,
        attempt: int,
        max_retries: int,
    ) -> None:
        if kind is ErrorKind.CONCURRENCY:
            try:
                self._store.reload(conflict_entities(exc))
            except Exception as reload_exc:
                error = ReloadError(f"Could not reload entities for {operation_name}")
                error.__cause__ = reload_exc
                raise self._fatal(error, operation_name, attempt, max_retries) from error
        self._sleep(self._policy.delay_for(kind, attempt))


class AsyncTransactionManager(_ExecutorBase):
    """Async retrying transaction executor; attempts still run one at a time."""

    def __init__(
        self,
        store: AsyncTransactionalStore,
        *,
        logger: TransactionLogger | None = None,
        classifier: ErrorClassifier = classify_error,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        super().__init__(logger=logger, classifier=classifier, policy=policy)
        self._store = store
        self._sleep = self._wrap_sleep(sleep)

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result

        return _async_sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str,
        max_retries: int | None = None,
    ) -> T:
        max_retries = self._resolve_max_retries(max_retries)
        started = time.perf_counter()
        attempt = 0
        last_error: BaseException | None = None
        while attempt < max_retries:
            attempt += 1
            self._log_start(operation_name, attempt, max_retries)
            try:
                result = await self._attempt(operation, operation_name)
            except Exception as exc:
                last_error = exc
                kind = self._classify(exc)
                if kind is ErrorKind.NON_TRANSIENT:
                    raise self._fatal(exc, operation_name, attempt, max_retries) from exc
                self._log_retry(kind, exc, operation_name, attempt, max_retries)
                if attempt < max_retries:
                    await self._prepare_retry(kind, exc, operation_name, attempt, max_retries)
                continue
            self._log_committed(operation_name, attempt, max_retries)
            self._log_elapsed(operation_name, started, attempt)
            return result

        raise self._exhausted(last_error, operation_name, max_retries) from last_error

    async def run_void(
        self,
        operation: Callable[[], Awaitable[Any] | Any],
        operation_name: str,
        max_retries: int | None = None,
    ) -> None:
        async def _discarding() -> bool:
            result = operation()
            if inspect.isawaitable(result):
                await result
            return True

        await self.run(_discarding, operation_name, max_retries)

    async def _attempt(
        self, operation: Callable[[], Awaitable[T] | T], operation_name: str
    ) -> T:
        handle: AsyncTransactionHandle | None = None
        committed = False
        try:
            handle = await self._store.begin(self._policy.isolation_level)
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            await handle.commit()
            committed = True
            return result  # type: ignore[return-value]
        except Exception as exc:
            if handle is not None:
                try:
                    await handle.rollback()
                except Exception as rollback_exc:
                    raise RollbackError(
                        f"Rollback failed after {type(exc).__name__}", original=exc
                    ) from rollback_exc
            raise
        finally:
            if handle is not None:
                await self._release(handle, operation_name, committed=committed)

    async def _release(
        self, handle: AsyncTransactionHandle, operation_name: str, *, committed: bool
    ) -> None:
        try:
            await handle.release()
        except Exception as exc:
            self._log_release_failure(exc, operation_name, committed=committed)

    async def _prepare_retry(
        self,
        kind: ErrorKind,
        exc: BaseException,
        operation_name: str,
        attempt: int,
        max_retries: int,
    ) -> None:
        if kind is ErrorKind.CONCURRENCY:
            try:
                await self._store.reload(conflict_entities(exc))
            except Exception as reload_exc:
                error = ReloadError(f"Could not reload entities for {operation_name}")
                error.__cause__ = reload_exc
                raise self._fatal(error, operation_name, attempt, max_retries) from error
        await self._sleep(self._policy.delay_for(kind, attempt))


__all__ = ["AsyncTransactionManager", "TransactionManager"]
