"""End-to-end tests for password registration, login and /auth/me."""

import asyncio
from io import BytesIO
from typing import Any, cast

import pytest
from fastapi import FastAPI
from PIL import Image
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import hash_password
from models import User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def _users_with_email(session: AsyncSession, email: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(User).where(_eq(User.email, email))
    )
    return int(result.scalar_one())


@pytest.mark.asyncio
async def test_register_creates_user(async_client, db_session: AsyncSession):
    response = await async_client.post(
        "/api/v1/auth/register",
        data={"email": "  Alice@X.com ", "password": "secret1"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User registered successfully!"
    user_id = body["userId"]

    user = (
        await db_session.execute(select(User).where(_eq(User.id, user_id)))
    ).scalar_one()
    assert user.email == "alice@x.com"
    assert user.name == "alice"
    assert user.google_id is None
    assert user.password_hash and user.password_hash != "secret1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "form",
    [
        {"email": "bob@example.com"},
        {"password": "secret1"},
        {"email": "bob@example.com", "password": "short"},
        {"email": "not-an-email", "password": "secret1"},
    ],
)
async def test_register_rejects_invalid_input(async_client, form):
    response = await async_client.post("/api/v1/auth/register", data=form)

    assert response.status_code == 400
    assert response.json()["code"] == "ValidationError"


@pytest.mark.asyncio
async def test_register_conflict_keeps_single_row(async_client, db_session: AsyncSession):
    form = {"email": "carol@example.com", "password": "secret1"}
    first = await async_client.post("/api/v1/auth/register", data=form)
    second = await async_client.post(
        "/api/v1/auth/register",
        data={"email": "CAROL@example.com", "password": "another1"},
    )

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "ConflictError"
    assert await _users_with_email(db_session, "carol@example.com") == 1


@pytest.mark.asyncio
async def test_register_conflict_under_concurrency(async_client, db_session: AsyncSession):
    form = {"email": "dave@example.com", "password": "secret1"}

    responses = await asyncio.gather(
        async_client.post("/api/v1/auth/register", data=form),
        async_client.post("/api/v1/auth/register", data=form),
    )

    assert sorted(response.status_code for response in responses) == [201, 409]
    assert await _users_with_email(db_session, "dave@example.com") == 1


@pytest.mark.asyncio
async def test_register_with_avatar_stores_jpeg(async_client, db_session, dummy_minio, test_settings):
    media_base = test_settings.media_public_base_url
    buffer = BytesIO()
    Image.new("RGB", (64, 64), color=(0, 128, 255)).save(buffer, format="PNG")

    response = await async_client.post(
        "/api/v1/auth/register",
        data={"email": "erin@example.com", "password": "secret1", "name": "Erin"},
        files={"avatar": ("avatar.png", buffer.getvalue(), "image/png")},
    )

    assert response.status_code == 201
    user = (
        await db_session.execute(select(User).where(_eq(User.email, "erin@example.com")))
    ).scalar_one()
    assert user.name == "Erin"
    assert user.avatar_url is not None
    assert user.avatar_url.startswith(f"{media_base}/avatars/")
    object_key = user.avatar_url.removeprefix(f"{media_base}/")
    assert dummy_minio.stored[object_key].startswith(b"\xff\xd8\xff")


@pytest.mark.asyncio
async def test_login_returns_token_matching_profile(async_client, app: FastAPI):
    await async_client.post(
        "/api/v1/auth/register",
        data={"email": "frank@example.com", "password": "secret1", "name": "Frank"},
    )

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "frank@example.com", "password": "secret1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "frank@example.com"
    assert body["user"]["name"] == "Frank"
    assert body["user"]["avatarUrl"] is None

    principal = app.state.token_service.verify(body["token"])
    assert principal.id == body["user"]["id"]
    assert principal.email == "frank@example.com"
    assert principal.name == "Frank"
    assert principal.avatar_url is None


@pytest.mark.asyncio
async def test_login_is_case_insensitive_on_email(async_client):
    await async_client.post(
        "/api/v1/auth/register",
        data={"email": "grace@example.com", "password": "secret1"},
    )

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "Grace@Example.com", "password": "secret1"},
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_unknown_email_is_not_found(async_client):
    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@example.com", "password": "secret1"},
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "User not found."


@pytest.mark.asyncio
async def test_login_wrong_password_is_unauthorized(async_client):
    await async_client.post(
        "/api/v1/auth/register",
        data={"email": "heidi@example.com", "password": "secret1"},
    )

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "heidi@example.com", "password": "wrong-password"},
    )

    assert response.status_code == 401
    assert response.json()["code"] == "IncorrectPassword"
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_login_for_google_only_account_is_unauthorized(async_client, db_session):
    db_session.add(User(email="ivan@example.com", name="Ivan", google_id="g-ivan"))
    await db_session.commit()

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "ivan@example.com", "password": "secret1"},
    )

    assert response.status_code == 401
    assert response.json()["code"] == "PasswordLoginUnavailable"


@pytest.mark.asyncio
async def test_login_rehashes_outdated_hash(async_client, db_session, monkeypatch):
    db_session.add(
        User(email="judy@example.com", name="Judy", password_hash=hash_password("secret1"))
    )
    await db_session.commit()

    from api.v1 import auth as auth_api

    monkeypatch.setattr(auth_api, "needs_rehash", lambda hashed: True)

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "judy@example.com", "password": "secret1"},
    )

    assert response.status_code == 200
    db_session.expire_all()
    user = (
        await db_session.execute(select(User).where(_eq(User.email, "judy@example.com")))
    ).scalar_one()
    assert user.password_hash is not None
    assert user.password_hash.startswith("$argon2")


@pytest.mark.asyncio
async def test_me_returns_profile(async_client, register_user):
    alice = await register_user("alice", name="Alice")

    response = await async_client.get("/api/v1/auth/me", headers=alice["headers"])

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == alice["id"]
    assert body["email"] == alice["email"]
    assert body["name"] == "Alice"
    assert "createdAt" in body
    assert "passwordHash" not in body


@pytest.mark.asyncio
async def test_me_requires_token(async_client):
    response = await async_client.get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.json()["code"] == "MissingTokenError"
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Bearer garbage", "Basic dXNlcjpwYXNz", "Bearer"])
async def test_me_rejects_bad_authorization_header(async_client, header):
    response = await async_client.get("/api/v1/auth/me", headers={"Authorization": header})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_for_deleted_user_is_not_found(async_client, register_user, db_session):
    alice = await register_user("alice")
    user = (
        await db_session.execute(select(User).where(_eq(User.id, alice["id"])))
    ).scalar_one()
    await db_session.delete(user)
    await db_session.commit()

    response = await async_client.get("/api/v1/auth/me", headers=alice["headers"])

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_register_login_create_post_scenario(async_client):
    await async_client.post(
        "/api/v1/auth/register",
        data={"email": "alice@x.com", "password": "secret1"},
    )
    login = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "alice@x.com", "password": "secret1"},
    )
    token = login.json()["token"]

    created = await async_client.post(
        "/api/v1/posts",
        json={"title": "Hi"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert created.status_code == 201
    post_id = created.json()["insertedId"]

    response = await async_client.get(f"/api/v1/posts/{post_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["author"]["name"] == "alice"
    assert body["likes"] == 0
    assert body["likedByCurrentUser"] is False
