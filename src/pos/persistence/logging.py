"""Operation-tagged logging helpers for persistence code."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from ..logging import PERFORMANCE_LOGGER_NAME, TRANSACTION_LOGGER_NAME


class TransactionLogger(Protocol):
    """Logging capability consumed by the transaction executor."""

    def transaction(self, operation: str, details: str, **data: Any) -> None:
        ...

    def warning(self, message: str, **context: Any) -> None:
        ...

    def error(self, operation: str, exc: BaseException, **context: Any) -> None:
        ...

    def critical(
        self, message: str, exc: BaseException | None = None, **context: Any
    ) -> None:
        ...

    def performance(self, operation: str, elapsed_ms: float, **metrics: Any) -> None:
        ...


class AppLogger:
    """Thin facade over a structlog logger with one method per event kind.

    Transaction events use ``info``, transient retries ``warning``, fatal
    failures ``error`` and exhausted retries ``critical``. Timings go to a
    separate ``debug`` logger so they can be routed to their own file.
    """

    def __init__(self, logger: Any | None = None, performance_logger: Any | None = None) -> None:
        self._logger = logger or structlog.get_logger(TRANSACTION_LOGGER_NAME)
        self._performance = performance_logger or structlog.get_logger(PERFORMANCE_LOGGER_NAME)

    def transaction(self, operation: str, details: str, **data: Any) -> None:
        self._logger.info(details, operation=operation, category="transaction", **data)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, operation: str, exc: BaseException, **context: Any) -> None:
        self._logger.error(
            f"{operation} failed",
            operation=operation,
            error=str(exc),
            exc_info=exc,
            **context,
        )

    def critical(
        self, message: str, exc: BaseException | None = None, **context: Any
    ) -> None:
        if exc is not None:
            context.setdefault("error", str(exc))
            context["exc_info"] = exc
        self._logger.critical(message, **context)

    def performance(self, operation: str, elapsed_ms: float, **metrics: Any) -> None:
        self._performance.debug(
            f"{operation} took {elapsed_ms:.1f}ms",
            operation=operation,
            elapsed_ms=round(elapsed_ms, 3),
            category="performance",
            **metrics,
        )


__all__ = ["AppLogger", "TransactionLogger"]
