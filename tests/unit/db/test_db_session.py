from __future__ import annotations

import sqlalchemy as sa

from src.pos.db import ProductModel, session_scope


def test_sqlite_connections_get_pragmas(database) -> None:
    with database.engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        assert conn.exec_driver_sql("PRAGMA busy_timeout").scalar() == 10000
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar().lower() == "wal"


def test_session_scope_closes_without_committing(database) -> None:
    with session_scope(database.session_factory) as session:
        session.add(ProductModel(sku="gum", name="Gum", price_cents=99, stock=1))
        session.flush()
        assert session.in_transaction()

    assert not session.in_transaction()
    with database.session_factory() as check:
        assert check.scalar(sa.select(sa.func.count()).select_from(ProductModel)) == 0
