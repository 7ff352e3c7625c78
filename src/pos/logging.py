"""Logging configuration for the POS application."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import structlog

from .core.config import AppConfig

TRANSACTION_LOGGER_NAME = "pos.transaction"
PERFORMANCE_LOGGER_NAME = "pos.performance"
PERFORMANCE_RETAIN_DAYS = 7

_LOG_FORMAT = "%(message)s"


def _rotating_file_handler(
    path: Path,
    *,
    retain_days: int,
    level: int,
) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=path,
        when="midnight",
        backupCount=retain_days,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    return handler


def configure_logging(config: AppConfig | None = None) -> None:
    """Configure stdlib handlers and route structlog events through them.

    Without a log directory only the console handler is installed. With one,
    general, transaction and error logs rotate daily; transaction logs are kept
    twice and error logs three times as long as the general log. Performance
    timings are debug events written to their own file for a week when enabled.
    """

    config = config or AppConfig()
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    performance_logger = logging.getLogger(PERFORMANCE_LOGGER_NAME)
    performance_logger.setLevel(logging.NOTSET)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(console)

    log_directory = config.resolve_log_directory()
    if log_directory is not None:
        retain = config.log_retain_days
        root.addHandler(
            _rotating_file_handler(log_directory / "pos.log", retain_days=retain, level=level)
        )
        if config.enable_transaction_logging:
            transactions = _rotating_file_handler(
                log_directory / "transactions.log",
                retain_days=retain * 2,
                level=logging.INFO,
            )
            transactions.addFilter(logging.Filter(TRANSACTION_LOGGER_NAME))
            root.addHandler(transactions)
        root.addHandler(
            _rotating_file_handler(
                log_directory / "errors.log",
                retain_days=retain * 3,
                level=logging.ERROR,
            )
        )
        if config.enable_performance_logging:
            performance = _rotating_file_handler(
                log_directory / "performance.log",
                retain_days=PERFORMANCE_RETAIN_DAYS,
                level=logging.DEBUG,
            )
            performance.addFilter(logging.Filter(PERFORMANCE_LOGGER_NAME))
            root.addHandler(performance)
            performance_logger.setLevel(logging.DEBUG)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.get_logger("pos").info("POS application logging initialized")


def close_logging() -> None:
    """Flush and detach every root handler installed by :func:`configure_logging`."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.flush()
        root.removeHandler(handler)
        handler.close()
    logging.getLogger(PERFORMANCE_LOGGER_NAME).setLevel(logging.NOTSET)


__all__ = [
    "configure_logging",
    "close_logging",
    "PERFORMANCE_LOGGER_NAME",
    "TRANSACTION_LOGGER_NAME",
]
