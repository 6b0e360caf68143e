"""Request and response bodies shared by the v1 routers."""

from __future__ import annotations

import datetime as dt
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN_AUTHOR_NAME = "Unknown Author"
MAX_TITLE_LENGTH = 255
MAX_CATEGORY_COUNT = 20


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class UserResponse(CamelModel):
    id: int
    email: str
    name: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None


class RegisterResponse(MessageResponse):
    user_id: int


class LoginRequest(CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(MessageResponse):
    token: str
    user: UserResponse


class ProfileUpdateResponse(MessageResponse):
    user: UserResponse


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class AuthorSummary(CamelModel):
    id: int | None = None
    name: str = UNKNOWN_AUTHOR_NAME
    avatar_url: str | None = None


class PostWriteRequest(CamelModel):
    title: str
    content: str | None = None
    date: dt.date | None = None
    categories: list[str] = Field(default_factory=list, max_length=MAX_CATEGORY_COUNT)

    @field_validator("title")
    @classmethod
    def _require_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Title is required.")
        if len(normalized) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        return normalized

    @field_validator("categories")
    @classmethod
    def _clean_categories(cls, value: list[str]) -> list[str]:
        return [category.strip() for category in value if category.strip()]


class PostResponse(CamelModel):
    id: int
    title: str
    content: str | None = None
    date: dt.date | None = None
    author: AuthorSummary
    categories: list[str] = Field(default_factory=list)
    likes: int = 0
    comment_count: int = 0
    liked_by_current_user: bool = False
    created_at: datetime
    updated_at: datetime


class PostCreatedResponse(MessageResponse):
    inserted_id: int


class PostUpdatedResponse(MessageResponse):
    post: PostResponse


class LikeStatusResponse(CamelModel):
    liked: bool
    likes: int


class CommentWriteRequest(CamelModel):
    content: str

    @field_validator("content")
    @classmethod
    def _require_content(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Comment content cannot be empty.")
        return normalized


class CommentResponse(CamelModel):
    id: int
    post_id: int
    content: str
    created_at: datetime
    updated_at: datetime
    user: AuthorSummary


class CommentUpdatedResponse(MessageResponse):
    comment: CommentResponse


class CommentDeletedResponse(MessageResponse):
    comment_id: int
