"""Core configuration primitives for the POS persistence layer."""

from .config import AppConfig, load_config

__all__ = ["AppConfig", "load_config"]
