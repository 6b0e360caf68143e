"""Core configuration and security primitives."""

from .config import Settings, get_settings, settings
from .logging_config import configure_logging
from .security import (
    hash_password,
    hash_password_async,
    needs_rehash,
    verify_password,
    verify_password_async,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "configure_logging",
    "hash_password",
    "hash_password_async",
    "needs_rehash",
    "verify_password",
    "verify_password_async",
]
