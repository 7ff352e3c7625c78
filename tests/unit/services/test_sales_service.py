from __future__ import annotations

import sqlite3

import pytest
import sqlalchemy as sa

from src.pos.db import ProductModel, SaleItemModel, SaleModel
from src.pos.exceptions import (
    DatabaseOperationError,
    ETagMismatchError,
    InsufficientStockError,
    NotFoundError,
)
from src.pos.persistence.transaction import (
    ErrorKind,
    SqlAlchemyStore,
    TransactionError,
    TransactionFailure,
    TransactionManager,
)
from src.pos.services import SaleLine, SalesService
from tests.helpers.database import make_database
from tests.helpers.transactions import RecordingLogger


def build_service(database, *, sleep=lambda _: None):
    session = database.session_factory()
    logger = RecordingLogger()
    manager = TransactionManager(SqlAlchemyStore(session), logger=logger, sleep=sleep)
    return SalesService(session, manager), session, logger


def _sale_count(database) -> int:
    with database.session_factory() as session:
        return session.scalar(sa.select(sa.func.count()).select_from(SaleModel))


def test_add_product_assigns_first_version(database) -> None:
    service, session, _ = build_service(database)

    product_id = service.add_product(sku="cola", name="Cola", price_cents=199, stock=12)

    stored = database.product("cola")
    assert stored is not None
    assert stored.id == product_id
    assert stored.version == 1
    assert stored.stock == 12
    session.close()


def test_add_product_rejects_negative_values(database) -> None:
    service, session, _ = build_service(database)

    with pytest.raises(ValueError):
        service.add_product(sku="bad", name="Bad", price_cents=-1)
    session.close()


def test_record_sale_decrements_stock_and_totals(database) -> None:
    database.seed_product(sku="cola", stock=5, price_cents=199)
    database.seed_product(sku="chips", stock=2, price_cents=349)
    service, session, logger = build_service(database)

    sale_id = service.record_sale(
        [SaleLine("cola", 2), SaleLine("chips", 1)], cashier="till-1"
    )

    assert database.product("cola").stock == 3
    assert database.product("chips").stock == 1
    with database.session_factory() as check:
        sale = check.get(SaleModel, sale_id)
        assert sale.total_cents == 2 * 199 + 349
        assert sale.cashier == "till-1"
        items = check.scalars(sa.select(SaleItemModel).where(SaleItemModel.sale_id == sale_id)).all()
        assert sorted(item.quantity for item in items) == [1, 2]
    assert len(logger.committed) == 1
    session.close()


def test_insufficient_stock_rolls_back_whole_sale(database) -> None:
    database.seed_product(sku="cola", stock=5)
    database.seed_product(sku="chips", stock=1)
    service, session, logger = build_service(database)

    with pytest.raises(TransactionError) as exc_info:
        service.record_sale([SaleLine("cola", 2), SaleLine("chips", 3)], cashier="till-1")

    assert isinstance(exc_info.value.cause, InsufficientStockError)
    assert exc_info.value.attempts == 1
    assert database.product("cola").stock == 5
    assert _sale_count(database) == 0
    assert len(logger.levels("error")) == 1
    session.close()


def test_record_sale_rejects_empty_or_non_positive_lines(database) -> None:
    service, session, _ = build_service(database)

    with pytest.raises(ValueError):
        service.record_sale([], cashier="till-1")
    with pytest.raises(ValueError):
        service.record_sale([SaleLine("cola", 0)], cashier="till-1")
    session.close()


def test_unknown_product_is_not_retried(database) -> None:
    service, session, logger = build_service(database)

    with pytest.raises(TransactionError) as exc_info:
        service.adjust_stock("missing", 1)

    assert isinstance(exc_info.value.cause, NotFoundError)
    assert len(logger.started) == 1
    session.close()


def test_stale_expected_version_is_not_retried(database) -> None:
    database.seed_product(sku="cola", stock=5)
    service, session, logger = build_service(database)

    assert service.adjust_stock("cola", 3, expected_version=1) == 8

    with pytest.raises(TransactionError) as exc_info:
        service.adjust_stock("cola", 1, expected_version=1)

    assert isinstance(exc_info.value.cause, ETagMismatchError)
    assert exc_info.value.reason is TransactionFailure.NON_TRANSIENT
    assert database.product("cola").stock == 8
    session.close()


def test_concurrent_stock_change_is_reloaded_and_retried(database) -> None:
    product_id = database.seed_product(sku="cola", stock=5)
    service, session, logger = build_service(database)
    # the session keeps this version-1 snapshot in its identity map
    stale = session.get(ProductModel, product_id)
    session.commit()
    with database.session_factory() as other, other.begin():
        other.get(ProductModel, product_id).stock = 4

    sale_id = service.record_sale([SaleLine("cola", 2)], cashier="till-2")

    stored = database.product("cola")
    assert stored.stock == 2
    assert stored.version == 3
    assert sale_id
    assert _sale_count(database) == 1
    warnings = logger.levels("warning")
    assert len(warnings) == 1
    assert warnings[0]["kind"] == ErrorKind.CONCURRENCY.value
    assert logger.committed[0]["attempt"] == 2
    assert stale.stock == 2
    session.close()


def test_locked_database_is_retried_after_backoff(tmp_path) -> None:
    database = make_database(tmp_path, sqlite_busy_timeout_ms=0)
    database.seed_product(sku="cola", stock=5)
    blocker = sqlite3.connect(database.path, isolation_level=None)
    blocker.execute("BEGIN IMMEDIATE")
    waited: list[float] = []

    def _release_lock(seconds: float) -> None:
        waited.append(seconds)
        blocker.execute("ROLLBACK")

    service, session, logger = build_service(database, sleep=_release_lock)
    try:
        assert service.adjust_stock("cola", -1) == 4
    finally:
        session.close()
        blocker.close()
        database.engine.dispose()

    assert waited == pytest.approx([0.2])
    warning = logger.levels("warning")[0]
    assert warning["kind"] == ErrorKind.CONTENTION.value
    assert warning["message"] == "Database locked during AdjustStock (attempt 1/3)"
    assert logger.committed[0]["attempt"] == 2


def test_lock_errors_surface_through_domain_wrapper(tmp_path) -> None:
    database = make_database(tmp_path, sqlite_busy_timeout_ms=0)
    database.seed_product(sku="cola", stock=5)
    blocker = sqlite3.connect(database.path, isolation_level=None)
    blocker.execute("BEGIN IMMEDIATE")

    service, session, logger = build_service(database)
    try:
        with pytest.raises(TransactionError) as exc_info:
            service.adjust_stock("cola", -1)
    finally:
        session.close()
        blocker.execute("ROLLBACK")
        blocker.close()
        database.engine.dispose()

    assert exc_info.value.retries_exhausted
    assert isinstance(exc_info.value.cause, DatabaseOperationError)
    assert len(logger.levels("critical")) == 1
