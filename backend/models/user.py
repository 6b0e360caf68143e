"""User domain model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, func
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Registered blog user.

    A row is created either by password registration (``password_hash`` set)
    or by a first Google login (``google_id`` set, no password). A later
    Google login with the same email links the two by filling ``google_id``.
    """

    __tablename__ = "users"

    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, nullable=False, index=True)
    )
    name: str | None = Field(
        default=None, sa_column=Column(String(120), nullable=True)
    )
    password_hash: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    google_id: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, unique=True)
    )
    # Either an owned storage object key or an external profile photo URL.
    avatar_url: str | None = Field(
        default=None, sa_column=Column(String(1024), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        ),
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        ),
    )
