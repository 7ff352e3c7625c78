"""Database models and session helpers."""

from .db_init import init_db
from .db_models import Base, ProductModel, SaleItemModel, SaleModel
from .db_session import build_engine, build_session_factory, session_scope

__all__ = [
    "Base",
    "ProductModel",
    "SaleItemModel",
    "SaleModel",
    "build_engine",
    "build_session_factory",
    "init_db",
    "session_scope",
]
