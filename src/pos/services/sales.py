"""Sales and stock operations executed through :class:`TransactionManager`."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.orm import Session

from ..db.db_models import ProductModel, SaleItemModel, SaleModel
from ..exceptions import (
    InsufficientStockError,
    ensure_found,
    ensure_version,
    handle_sqlalchemy_errors,
)
from ..persistence.transaction import TransactionManager


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True, frozen=True)
class SaleLine:
    sku: str
    quantity: int


class SalesService:
    """Record sales and stock movements atomically.

    Every public method wraps its work in a closure that reloads what it needs
    from ``session``, so a retried attempt starts from fresh state.
    """

    def __init__(self, session: Session, transactions: TransactionManager) -> None:
        self._session = session
        self._transactions = transactions

    def add_product(self, *, sku: str, name: str, price_cents: int, stock: int = 0) -> int:
        if price_cents < 0:
            raise ValueError("price_cents cannot be negative")
        if stock < 0:
            raise ValueError("stock cannot be negative")

        def _operation() -> int:
            product = ProductModel(
                sku=sku,
                name=name,
                price_cents=price_cents,
                stock=stock,
                updated_at=_utcnow(),
            )
            self._session.add(product)
            with handle_sqlalchemy_errors(entity="product"):
                self._session.flush()
            return product.id

        return self._transactions.run(_operation, "AddProduct")

    def adjust_stock(self, sku: str, delta: int, *, expected_version: int | None = None) -> int:
        """Apply ``delta`` to the product's stock and return the new level."""

        def _operation() -> int:
            product = self._load_product(sku)
            if expected_version is not None:
                ensure_version(expected=expected_version, actual=product.version, entity="product")
            new_stock = product.stock + delta
            if new_stock < 0:
                raise InsufficientStockError(
                    f"product '{sku}' has {product.stock} in stock, cannot remove {-delta}"
                )
            product.stock = new_stock
            product.updated_at = _utcnow()
            with handle_sqlalchemy_errors(entity="product", conflicting=[product]):
                self._session.flush()
            return new_stock

        return self._transactions.run(_operation, "AdjustStock")

    def record_sale(self, lines: Iterable[SaleLine], *, cashier: str) -> str:
        """Persist a sale and decrement stock for every line; returns the sale id."""

        lines = list(lines)
        if not lines:
            raise ValueError("a sale needs at least one line")
        if any(line.quantity < 1 for line in lines):
            raise ValueError("sale quantities must be positive")

        def _operation() -> str:
            now = _utcnow()
            sale = SaleModel(id=uuid4().hex, cashier=cashier, total_cents=0, created_at=now)
            touched: list[ProductModel] = []
            total = 0
            for line in lines:
                product = self._load_product(line.sku)
                if product.stock < line.quantity:
                    raise InsufficientStockError(
                        f"product '{line.sku}' has {product.stock} in stock, "
                        f"cannot sell {line.quantity}"
                    )
                product.stock -= line.quantity
                product.updated_at = now
                touched.append(product)
                sale.items.append(
                    SaleItemModel(
                        product_id=product.id,
                        quantity=line.quantity,
                        unit_price_cents=product.price_cents,
                    )
                )
                total += product.price_cents * line.quantity
            sale.total_cents = total
            self._session.add(sale)
            with handle_sqlalchemy_errors(entity="sale", conflicting=touched):
                self._session.flush()
            return sale.id

        return self._transactions.run(_operation, "RecordSale")

    def _load_product(self, sku: str) -> ProductModel:
        product = self._session.execute(
            sa.select(ProductModel).where(ProductModel.sku == sku)
        ).scalar_one_or_none()
        ensure_found(product, entity="product", identifier=sku)
        return product  # type: ignore[return-value]


__all__ = ["SaleLine", "SalesService"]
