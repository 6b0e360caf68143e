"""Database helpers."""

from .errors import is_foreign_key_violation, is_unique_violation
from .session import build_engine, build_session_maker

__all__ = [
    "build_engine",
    "build_session_maker",
    "is_foreign_key_violation",
    "is_unique_violation",
]
