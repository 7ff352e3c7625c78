"""Persistence helpers shared by POS business operations."""
