"""Authentication endpoints: password registration/login and Google OAuth."""

from __future__ import annotations

import logging
from typing import Annotated, Any, cast
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import RedirectResponse
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import (
    AppSettings,
    CurrentPrincipal,
    DbSession,
    Media,
    get_oauth_client,
    get_token_service,
)
from core import Settings, hash_password_async, needs_rehash
from db.errors import is_unique_violation
from models import User
from services.auth import (
    OAuthError,
    OAuthProvider,
    TokenService,
    normalize_email,
    reconcile_external_identity,
    registration_conflict_exists,
    resolve_login_user,
)
from services.errors import BlogError, ConflictError, InternalError, NotFoundError, ValidationError
from .avatars import store_avatar_upload
from .schemas import LoginRequest, LoginResponse, RegisterResponse, UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 120
OAUTH_FAILED = "google-auth-failed"
TOKEN_GENERATION_FAILED = "token-generation-failed"

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)

Tokens = Annotated[TokenService, Depends(get_token_service)]
OAuthClient = Annotated[OAuthProvider, Depends(get_oauth_client)]


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _validated_email(value: str) -> str:
    try:
        _email_adapter.validate_python(value.strip())
    except PydanticValidationError as exc:
        raise ValidationError("A valid email address is required.") from exc
    return normalize_email(value)


def _default_name(email: str) -> str:
    return email.split("@", 1)[0]


async def get_user_by_id(session: AsyncSession, user_id: int) -> User:
    result = await session.execute(select(User).where(_eq(User.id, user_id)).limit(1))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found.")
    return user


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
async def register(
    session: DbSession,
    settings: AppSettings,
    media: Media,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    name: Annotated[str | None, Form()] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> RegisterResponse:
    if not email or not password:
        raise ValidationError("Email and password are required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    normalized_email = _validated_email(email)
    display_name = (name or "").strip() or _default_name(normalized_email)
    if len(display_name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")

    if await registration_conflict_exists(session, normalized_email=normalized_email):
        raise ConflictError("This email is already registered.")

    password_hash = await hash_password_async(password)
    avatar_url: str | None = None
    if avatar is not None and avatar.filename:
        avatar_url = await store_avatar_upload(
            avatar, media=media, max_bytes=settings.upload_max_bytes
        )

    user = User(
        email=normalized_email,
        name=display_name,
        password_hash=password_hash,
        avatar_url=avatar_url,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        await media.discard(avatar_url, reason="registration failed")
        if is_unique_violation(exc):
            raise ConflictError("This email is already registered.") from exc
        raise InternalError(f"Registration error: {exc}") from exc
    await session.refresh(user)
    if user.id is None:
        raise InternalError("User record missing identifier")

    logger.info("User registered", extra={"user_id": user.id})
    return RegisterResponse(message="User registered successfully!", user_id=user.id)


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    session: DbSession,
    tokens: Tokens,
) -> LoginResponse:
    user = await resolve_login_user(session, email=payload.email, password=payload.password)

    if user.password_hash and needs_rehash(user.password_hash):
        user.password_hash = await hash_password_async(payload.password)
        session.add(user)
        await session.commit()
        await session.refresh(user)

    token = tokens.mint(user)
    return LoginResponse(
        message="Login successful!",
        token=token,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def read_me(principal: CurrentPrincipal, session: DbSession) -> UserResponse:
    user = await get_user_by_id(session, principal.id)
    return UserResponse.model_validate(user)


@router.get("/google")
async def google_login(
    settings: AppSettings,
    tokens: Tokens,
    oauth: OAuthClient,
) -> RedirectResponse:
    try:
        state = tokens.mint_state()
    except BlogError as exc:
        logger.error("Could not start Google login", extra={"reason": str(exc)})
        return _client_redirect(settings, "/login", error=OAUTH_FAILED)
    return RedirectResponse(oauth.authorization_url(state), status_code=status.HTTP_302_FOUND)


def _client_redirect(settings: Settings, path: str, **params: str) -> RedirectResponse:
    url = f"{settings.client_url.rstrip('/')}{path}?{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/google/callback")
async def google_callback(
    session: DbSession,
    settings: AppSettings,
    media: Media,
    tokens: Tokens,
    oauth: OAuthClient,
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    if error or not code or not state:
        logger.info("Google callback without authorization code", extra={"error": error})
        return _client_redirect(settings, "/login", error=OAUTH_FAILED)

    try:
        tokens.verify_state(state)
        profile = await oauth.fetch_profile(code)
        superseded: list[str] = []
        user = await reconcile_external_identity(
            session, profile, on_avatar_superseded=superseded.append
        )
    except (OAuthError, BlogError) as exc:
        logger.warning("Google authentication failed", extra={"reason": str(exc)})
        return _client_redirect(settings, "/login", error=OAUTH_FAILED)

    for reference in superseded:
        await media.discard(reference, reason="replaced by external profile")

    try:
        token = tokens.mint(user)
    except BlogError as exc:
        logger.error("Token generation failed after Google login", extra={"reason": str(exc)})
        return _client_redirect(settings, "/login", error=TOKEN_GENERATION_FAILED)

    return _client_redirect(settings, "/auth/callback", token=token)
