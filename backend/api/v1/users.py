"""Profile and password management for the signed-in user."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile
from sqlalchemy.exc import SQLAlchemyError

from api.deps import AppSettings, CurrentPrincipal, DbSession, Media
from core import hash_password_async, verify_password_async
from services.auth import credential_of, password_hash_of
from services.errors import AuthenticationError, InternalError, ValidationError
from .auth import MAX_NAME_LENGTH, MIN_PASSWORD_LENGTH, get_user_by_id
from .avatars import store_avatar_upload
from .schemas import MessageResponse, PasswordChangeRequest, ProfileUpdateResponse, UserResponse

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    principal: CurrentPrincipal,
    session: DbSession,
    settings: AppSettings,
    media: Media,
    name: Annotated[str | None, Form()] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ProfileUpdateResponse:
    """Update name and/or avatar; the replaced avatar is removed after commit."""
    normalized_name = name.strip() if name is not None else ""
    has_avatar = avatar is not None and bool(avatar.filename)
    if not normalized_name and not has_avatar:
        raise ValidationError("No update data provided.")
    if len(normalized_name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")

    user = await get_user_by_id(session, principal.id)
    previous_avatar = user.avatar_url

    uploaded_avatar: str | None = None
    if has_avatar and avatar is not None:
        uploaded_avatar = await store_avatar_upload(
            avatar, media=media, max_bytes=settings.upload_max_bytes
        )
        user.avatar_url = uploaded_avatar
    if normalized_name:
        user.name = normalized_name

    session.add(user)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        await media.discard(uploaded_avatar, reason="profile update failed")
        raise InternalError(f"Failed to update profile: {exc}") from exc
    await session.refresh(user)

    if uploaded_avatar is not None and previous_avatar != uploaded_avatar:
        await media.discard(previous_avatar, reason="avatar replaced")

    return ProfileUpdateResponse(
        message="Profile updated successfully.",
        user=UserResponse.model_validate(user),
    )


@router.put("/password", response_model=MessageResponse)
async def change_password(
    payload: PasswordChangeRequest,
    principal: CurrentPrincipal,
    session: DbSession,
) -> MessageResponse:
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if payload.current_password == payload.new_password:
        raise ValidationError("New password must be different from the current one.")

    user = await get_user_by_id(session, principal.id)
    stored_hash = password_hash_of(credential_of(user))
    if stored_hash is None:
        raise ValidationError("Cannot change password for social login accounts.")
    if not await verify_password_async(payload.current_password, stored_hash):
        raise AuthenticationError("Incorrect current password.", code="IncorrectPassword")

    user.password_hash = await hash_password_async(payload.new_password)
    session.add(user)
    await session.commit()
    logger.info("Password changed", extra={"user_id": user.id})
    return MessageResponse(message="Password updated successfully.")
