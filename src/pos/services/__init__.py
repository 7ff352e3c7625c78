"""Business services built on the transaction executor."""

from .sales import SaleLine, SalesService

__all__ = ["SaleLine", "SalesService"]
