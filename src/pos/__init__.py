"""Point-of-sale persistence core.

The package groups the transactional executor used by business operations,
the SQLAlchemy wiring it runs against, and the ambient logging/configuration
helpers shared by the application shell.
"""
