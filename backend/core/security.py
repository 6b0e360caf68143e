"""Password hashing helpers."""

from __future__ import annotations

import asyncio

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True when ``plain`` matches ``hashed``.

    Accounts created through an external identity provider carry no password
    hash; those never match.
    """
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def needs_rehash(hashed: str) -> bool:
    return pwd_context.needs_update(hashed)


async def hash_password_async(plain: str) -> str:
    return await asyncio.to_thread(hash_password, plain)


async def verify_password_async(plain: str, hashed: str | None) -> bool:
    return await asyncio.to_thread(verify_password, plain, hashed)
