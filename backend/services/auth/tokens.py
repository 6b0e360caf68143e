"""Bearer token minting and verification."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from core import Settings
from models import User
from services.errors import ConfigurationError, IncompleteIdentityError, InvalidTokenError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TTL = timedelta(hours=1)
OAUTH_STATE_PURPOSE = "oauth_state"


@dataclass(frozen=True)
class Principal:
    """Identity resolved from a verified token; claims as of mint time."""

    id: int
    email: str
    name: str | None = None
    avatar_url: str | None = None

    @property
    def channel(self) -> str:
        return str(self.id)


def _now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class TokenService:
    """Signs identity tokens with the process-wide shared secret.

    Verification is stateless: no store lookup happens, so a principal
    reflects the user record at mint time until the token expires.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = ACCESS_TOKEN_TTL,
        state_ttl: timedelta = timedelta(minutes=10),
    ) -> None:
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl
        self.state_ttl = state_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(minutes=settings.access_token_expire_minutes),
            state_ttl=timedelta(minutes=settings.oauth_state_expire_minutes),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._secret)

    def mint(self, user: User, *, now: datetime | None = None) -> str:
        """Return a signed token carrying the user's public identity claims."""
        if not self._secret:
            raise ConfigurationError("JWT secret is not configured")
        if user.id is None or not user.email:
            raise IncompleteIdentityError()

        issued_at = _now(now)
        payload = {
            "userId": user.id,
            "email": user.email,
            "name": user.name,
            "avatarUrl": user.avatar_url,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str, *, now: datetime | None = None) -> Principal:
        """Decode ``token`` or raise ``InvalidTokenError``."""
        claims = self._decode(token, now=now)
        user_id = claims.get("userId")
        email = claims.get("email")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise InvalidTokenError("Not authorized, token invalid.")
        if not isinstance(email, str) or not email:
            raise InvalidTokenError("Not authorized, token invalid.")
        name = claims.get("name")
        avatar_url = claims.get("avatarUrl")
        return Principal(
            id=user_id,
            email=email,
            name=name if isinstance(name, str) else None,
            avatar_url=avatar_url if isinstance(avatar_url, str) else None,
        )

    def mint_state(self, *, now: datetime | None = None) -> str:
        """Return a short-lived signed value for the OAuth ``state`` parameter."""
        if not self._secret:
            raise ConfigurationError("JWT secret is not configured")
        issued_at = _now(now)
        payload = {
            "purpose": OAUTH_STATE_PURPOSE,
            "nonce": secrets.token_urlsafe(16),
            "exp": int((issued_at + self.state_ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify_state(self, state: str, *, now: datetime | None = None) -> None:
        claims = self._decode(state, now=now)
        if claims.get("purpose") != OAUTH_STATE_PURPOSE:
            raise InvalidTokenError("Invalid OAuth state")

    def _decode(self, token: str, *, now: datetime | None) -> dict[str, Any]:
        if not self._secret:
            raise InvalidTokenError("Authentication error: Server configuration issue")
        if not token:
            raise InvalidTokenError()
        try:
            # Time-based claims are checked below against an injectable clock.
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(f"Not authorized, token invalid: {exc}") from exc

        expires_at = claims.get("exp")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise InvalidTokenError("Not authorized, token invalid.")
        if expires_at <= _now(now).timestamp():
            raise InvalidTokenError("Not authorized, token expired.", code="TokenExpired")
        return claims
