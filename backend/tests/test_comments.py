"""End-to-end tests for comment threads and comment ownership."""

from typing import Any, cast

import pytest
from sqlalchemy import select
from sqlalchemy.sql import ColumnElement

from models import Comment


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def _create_post(async_client, user: dict[str, Any], title: str = "Post") -> int:
    response = await async_client.post(
        "/api/v1/posts",
        json={"title": title},
        headers=user["headers"],
    )
    assert response.status_code == 201
    return response.json()["insertedId"]


async def _comment(async_client, user: dict[str, Any], post_id: int, content: str = "Nice post") -> dict:
    response = await async_client.post(
        f"/api/v1/posts/{post_id}/comments",
        json={"content": content},
        headers=user["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_comment_returns_author_view(async_client, register_user):
    alice = await register_user("alice")
    bob = await register_user("bob", name="Bob")
    post_id = await _create_post(async_client, alice)

    body = await _comment(async_client, bob, post_id, content="  Great read  ")

    assert body["content"] == "Great read"
    assert body["postId"] == post_id
    assert body["user"] == {"id": bob["id"], "name": "Bob", "avatarUrl": None}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"content": ""}, {"content": "   "}, {}])
async def test_create_comment_rejects_empty_content(async_client, register_user, payload):
    alice = await register_user("alice")
    post_id = await _create_post(async_client, alice)

    response = await async_client.post(
        f"/api/v1/posts/{post_id}/comments",
        json=payload,
        headers=alice["headers"],
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_comment_on_missing_post(async_client, register_user):
    alice = await register_user("alice")

    response = await async_client.post(
        "/api/v1/posts/999999/comments",
        json={"content": "hello"},
        headers=alice["headers"],
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_comments_is_public_and_newest_first(async_client, register_user):
    alice = await register_user("alice")
    post_id = await _create_post(async_client, alice)
    first = await _comment(async_client, alice, post_id, "one")
    second = await _comment(async_client, alice, post_id, "two")

    response = await async_client.get(f"/api/v1/posts/{post_id}/comments")

    assert response.status_code == 200
    assert [comment["id"] for comment in response.json()] == [second["id"], first["id"]]
    assert (await async_client.get("/api/v1/posts/abc/comments")).status_code == 400


@pytest.mark.asyncio
async def test_comment_author_can_edit_and_delete(async_client, register_user, db_session):
    alice = await register_user("alice")
    post_id = await _create_post(async_client, alice)
    comment = await _comment(async_client, alice, post_id)

    edited = await async_client.put(
        f"/api/v1/comments/{comment['id']}",
        json={"content": "Edited text"},
        headers=alice["headers"],
    )
    assert edited.status_code == 200
    assert edited.json()["comment"]["content"] == "Edited text"
    assert edited.json()["comment"]["user"]["id"] == alice["id"]

    deleted = await async_client.delete(
        f"/api/v1/comments/{comment['id']}",
        headers=alice["headers"],
    )
    assert deleted.status_code == 200
    assert deleted.json()["commentId"] == comment["id"]
    remaining = await db_session.execute(select(Comment).where(_eq(Comment.id, comment["id"])))
    assert remaining.first() is None


@pytest.mark.asyncio
async def test_post_author_cannot_edit_or_delete_others_comment(async_client, register_user, db_session):
    alice = await register_user("alice")
    bob = await register_user("bob")
    post_id = await _create_post(async_client, alice)
    comment = await _comment(async_client, bob, post_id, "bob's words")

    edit = await async_client.put(
        f"/api/v1/comments/{comment['id']}",
        json={"content": "censored"},
        headers=alice["headers"],
    )
    delete = await async_client.delete(
        f"/api/v1/comments/{comment['id']}",
        headers=alice["headers"],
    )

    assert edit.status_code == 403
    assert delete.status_code == 403
    stored = (
        await db_session.execute(select(Comment.content).where(_eq(Comment.id, comment["id"])))
    ).scalar_one()
    assert stored == "bob's words"


@pytest.mark.asyncio
async def test_edit_comment_validation_and_missing(async_client, register_user):
    alice = await register_user("alice")
    post_id = await _create_post(async_client, alice)
    comment = await _comment(async_client, alice, post_id)

    empty = await async_client.put(
        f"/api/v1/comments/{comment['id']}",
        json={"content": "  "},
        headers=alice["headers"],
    )
    missing = await async_client.put(
        "/api/v1/comments/999999",
        json={"content": "hello"},
        headers=alice["headers"],
    )
    missing_delete = await async_client.delete("/api/v1/comments/999999", headers=alice["headers"])
    anonymous = await async_client.delete(f"/api/v1/comments/{comment['id']}")

    assert empty.status_code == 400
    assert missing.status_code == 404
    assert missing_delete.status_code == 404
    assert anonymous.status_code == 401
