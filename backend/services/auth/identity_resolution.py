"""Identity normalization, password login and external identity reconciliation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import verify_password_async
from db.errors import is_unique_violation
from models import User
from services.errors import (
    AuthenticationError,
    IdentityError,
    InternalError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_DISPLAY_NAME = "Google User"
MAX_RECONCILE_ATTEMPTS = 3


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def normalize_email(value: str) -> str:
    return value.strip().lower()


@dataclass(frozen=True)
class PasswordCredential:
    password_hash: str


@dataclass(frozen=True)
class ExternalCredential:
    external_id: str


@dataclass(frozen=True)
class LinkedCredential:
    password_hash: str
    external_id: str


Credential = PasswordCredential | ExternalCredential | LinkedCredential


def credential_of(user: User) -> Credential:
    """Return which login paths ``user`` can take."""
    if user.password_hash and user.google_id:
        return LinkedCredential(password_hash=user.password_hash, external_id=user.google_id)
    if user.google_id:
        return ExternalCredential(external_id=user.google_id)
    if user.password_hash:
        return PasswordCredential(password_hash=user.password_hash)
    # Every row is created through one of the two login paths.
    raise InternalError(f"User {user.id} has no login credential")


def password_hash_of(credential: Credential) -> str | None:
    if isinstance(credential, (PasswordCredential, LinkedCredential)):
        return credential.password_hash
    return None


@dataclass(frozen=True)
class ExternalProfile:
    """Profile returned by an OAuth provider."""

    external_id: str
    emails: Sequence[str] = field(default_factory=tuple)
    display_name: str | None = None
    avatar_url: str | None = None

    @property
    def primary_email(self) -> str | None:
        for candidate in self.emails:
            if candidate and candidate.strip():
                return normalize_email(candidate)
        return None


async def find_user_by_email(session: AsyncSession, email: str) -> User | None:
    lowered_email_column = cast(Any, func.lower(cast(Any, User.email)))
    result = await session.execute(
        select(User).where(_eq(lowered_email_column, normalize_email(email))).limit(1)
    )
    return result.scalar_one_or_none()


async def find_user_by_external_id(session: AsyncSession, external_id: str) -> User | None:
    result = await session.execute(
        select(User).where(_eq(User.google_id, external_id)).limit(1)
    )
    return result.scalar_one_or_none()


async def registration_conflict_exists(
    session: AsyncSession,
    *,
    normalized_email: str,
) -> bool:
    return await find_user_by_email(session, normalized_email) is not None


async def resolve_login_user(
    session: AsyncSession,
    *,
    email: str,
    password: str,
) -> User:
    """Return the user owning ``email`` when ``password`` matches."""
    user = await find_user_by_email(session, email)
    if user is None:
        raise NotFoundError("User not found.")

    password_hash = password_hash_of(credential_of(user))
    if password_hash is None:
        raise AuthenticationError(
            "This account signs in with Google.",
            code="PasswordLoginUnavailable",
        )
    if not await verify_password_async(password, password_hash):
        raise AuthenticationError("Incorrect password.", code="IncorrectPassword")
    return user


def _refresh_profile(user: User, profile: ExternalProfile) -> bool:
    """Copy changed display data from ``profile`` onto ``user``."""
    changed = False
    if profile.display_name and user.name != profile.display_name:
        user.name = profile.display_name
        changed = True
    if profile.avatar_url and user.avatar_url != profile.avatar_url:
        user.avatar_url = profile.avatar_url
        changed = True
    return changed


def _attach_external_identity(user: User, profile: ExternalProfile) -> None:
    credential = credential_of(user)
    if isinstance(credential, (ExternalCredential, LinkedCredential)):
        if credential.external_id != profile.external_id:
            logger.warning(
                "Relinking user to a different external identity",
                extra={"user_id": user.id},
            )
    user.google_id = profile.external_id
    _refresh_profile(user, profile)


def _report_superseded(
    previous_avatar: str | None,
    user: User,
    callback: Callable[[str], None] | None,
) -> None:
    if callback is not None and previous_avatar and previous_avatar != user.avatar_url:
        callback(previous_avatar)


async def _commit_or_retry(session: AsyncSession) -> bool:
    """Commit; return False when a concurrent writer won a unique constraint."""
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            return False
        raise InternalError(f"Failed to store user identity: {exc}") from exc
    return True


async def reconcile_external_identity(
    session: AsyncSession,
    profile: ExternalProfile,
    *,
    max_attempts: int = MAX_RECONCILE_ATTEMPTS,
    on_avatar_superseded: Callable[[str], None] | None = None,
) -> User:
    """Find or create the single local user for an OAuth profile.

    Lookup order is external id, then email, then insert. A unique-constraint
    violation means another login created or linked the same identity
    concurrently, so the lookups are repeated instead of failing.

    When a committed refresh or link replaces the stored avatar reference,
    the previous reference is passed to ``on_avatar_superseded``.
    """
    email = profile.primary_email
    if email is None:
        raise IdentityError()

    try:
        for attempt in range(max_attempts):
            user = await find_user_by_external_id(session, profile.external_id)
            if user is not None:
                previous_avatar = user.avatar_url
                if not _refresh_profile(user, profile):
                    return user
                session.add(user)
                if await _commit_or_retry(session):
                    await session.refresh(user)
                    _report_superseded(previous_avatar, user, on_avatar_superseded)
                    return user
                continue

            user = await find_user_by_email(session, email)
            if user is not None:
                previous_avatar = user.avatar_url
                _attach_external_identity(user, profile)
                session.add(user)
                if await _commit_or_retry(session):
                    await session.refresh(user)
                    _report_superseded(previous_avatar, user, on_avatar_superseded)
                    logger.info(
                        "Linked external identity to existing account",
                        extra={"user_id": user.id},
                    )
                    return user
                continue

            user = User(
                email=email,
                name=profile.display_name or DEFAULT_EXTERNAL_DISPLAY_NAME,
                google_id=profile.external_id,
                password_hash=None,
                avatar_url=profile.avatar_url,
            )
            session.add(user)
            if await _commit_or_retry(session):
                await session.refresh(user)
                logger.info("Created account from external identity", extra={"user_id": user.id})
                return user
            logger.info(
                "Concurrent first login detected, retrying lookup",
                extra={"attempt": attempt + 1},
            )
    except SQLAlchemyError as exc:
        await session.rollback()
        raise InternalError(f"Identity lookup failed: {exc}") from exc

    raise InternalError("Could not reconcile external identity")
