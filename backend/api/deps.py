"""Shared FastAPI dependencies.

Collaborators built by the app factory live on ``app.state``; dependencies
read them from the current request instead of module globals.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core import Settings
from services import MediaStore
from services.auth import OAuthProvider, Principal, TokenService
from services.errors import AuthenticationError, MissingTokenError
from services.notifications import CommentNotifier

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a session whose connection is released on every exit path."""
    async with request.app.state.session_maker() as session:
        yield session


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_oauth_client(request: Request) -> OAuthProvider:
    return request.app.state.oauth_client


def get_comment_notifier(request: Request) -> CommentNotifier:
    return request.app.state.comment_notifier


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


async def require_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> Principal:
    """Resolve the caller or fail the request with 401."""
    if credentials is None or not credentials.credentials:
        logger.info("Rejected request without bearer token")
        raise MissingTokenError()
    try:
        return tokens.verify(credentials.credentials)
    except AuthenticationError as exc:
        logger.info("Rejected request with invalid bearer token", extra={"code": exc.code})
        raise


async def optional_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> Principal | None:
    """Resolve the caller when a valid token is present, else ``None``."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return tokens.verify(credentials.credentials)
    except AuthenticationError as exc:
        logger.info(
            "Ignoring invalid bearer token on optional route",
            extra={"code": exc.code, "reason": exc.message},
        )
        return None


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(require_principal)]
OptionalPrincipal = Annotated[Principal | None, Depends(optional_principal)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Media = Annotated[MediaStore, Depends(get_media_store)]
