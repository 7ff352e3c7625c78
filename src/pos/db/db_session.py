"""Engine and session factories."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import AppConfig


def _install_sqlite_pragmas(engine: Engine, *, busy_timeout_ms: int) -> None:
    """Wait on locks instead of failing at once, and allow readers during writes."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            cursor.execute("PRAGMA journal_mode = WAL")
        finally:
            cursor.close()


def build_engine(config: AppConfig | None = None, *, url: str | None = None) -> Engine:
    config = config or AppConfig()
    database_url = url or config.resolve_database_url()
    engine = create_engine(database_url, future=True)
    if engine.dialect.name == "sqlite":
        _install_sqlite_pragmas(engine, busy_timeout_ms=config.sqlite_busy_timeout_ms)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a session and close it afterwards; transactions stay with the caller."""

    session = factory()
    try:
        yield session
    finally:
        session.close()
