"""Shared post/comment view builders and aggregate queries."""

from __future__ import annotations

from typing import Any, TypeVar, cast

from fastapi import Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Comment, Like, Post, User
from .schemas import UNKNOWN_AUTHOR_NAME, AuthorSummary, CommentResponse, PostResponse

MAX_PAGE_SIZE = 100

PostRow = tuple[Post, str | None, str | None]
CommentRow = tuple[Comment, int | None, str | None, str | None]

RowT = TypeVar("RowT")


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


def _page(rows: list[RowT], response: Response, *, offset: int, limit: int | None) -> list[RowT]:
    """Drop the look-ahead row and advertise the next offset when one exists."""
    if limit is None or len(rows) <= limit:
        return rows
    response.headers["X-Next-Offset"] = str(offset + limit)
    return rows[:limit]


def _author(author_id: int | None, name: str | None, avatar_url: str | None) -> AuthorSummary:
    return AuthorSummary(
        id=author_id,
        name=name or UNKNOWN_AUTHOR_NAME,
        avatar_url=avatar_url,
    )


def _post_query() -> Any:
    return select(
        cast(Any, Post),
        cast(ColumnElement[str | None], User.name),
        cast(ColumnElement[str | None], User.avatar_url),
    ).outerjoin(User, _eq(User.id, Post.author_id)).execution_options(populate_existing=True)


async def collect_like_meta(
    session: AsyncSession,
    post_ids: list[int],
    viewer_id: int | None,
) -> tuple[dict[int, int], set[int]]:
    """Return per-post like counts and the ids the viewer liked."""
    if not post_ids:
        return {}, set()

    post_id_column = cast(ColumnElement[int], Like.post_id)
    user_id_column = cast(ColumnElement[int], Like.user_id)
    count_column = cast(Any, func.count(func.distinct(user_id_column)))
    count_result = await session.execute(
        select(post_id_column, count_column)
        .where(post_id_column.in_(post_ids))
        .group_by(post_id_column)
    )
    count_map = {post_id: int(total) for post_id, total in count_result.all()}

    if viewer_id is None:
        return count_map, set()

    viewer_result = await session.execute(
        select(post_id_column).where(
            _eq(user_id_column, viewer_id),
            post_id_column.in_(post_ids),
        )
    )
    liked_set = {row[0] for row in viewer_result.all()}
    return count_map, liked_set


async def collect_comment_counts(session: AsyncSession, post_ids: list[int]) -> dict[int, int]:
    if not post_ids:
        return {}
    post_id_column = cast(ColumnElement[int], Comment.post_id)
    count_column = cast(Any, func.count(cast(Any, Comment.id)))
    result = await session.execute(
        select(post_id_column, count_column)
        .where(post_id_column.in_(post_ids))
        .group_by(post_id_column)
    )
    return {post_id: int(total) for post_id, total in result.all()}


async def build_post_responses(
    session: AsyncSession,
    rows: list[PostRow],
    viewer_id: int | None,
) -> list[PostResponse]:
    post_ids = [post.id for post, _name, _avatar in rows if post.id is not None]
    count_map, liked_set = await collect_like_meta(session, post_ids, viewer_id)
    comment_counts = await collect_comment_counts(session, post_ids)

    responses: list[PostResponse] = []
    for post, author_name, author_avatar_url in rows:
        if post.id is None:
            raise ValueError("Post record missing identifier")
        responses.append(
            PostResponse(
                id=post.id,
                title=post.title,
                content=post.content,
                date=post.date,
                author=_author(post.author_id, author_name, author_avatar_url),
                categories=list(post.categories or []),
                likes=count_map.get(post.id, 0),
                comment_count=comment_counts.get(post.id, 0),
                liked_by_current_user=post.id in liked_set,
                created_at=post.created_at,
                updated_at=post.updated_at,
            )
        )
    return responses


async def list_post_views(
    session: AsyncSession,
    response: Response,
    *,
    limit: int | None,
    offset: int,
    viewer_id: int | None,
) -> list[PostResponse]:
    """Newest-first posts with aggregated like and comment counts."""
    query = _post_query().order_by(
        _desc(cast(Any, Post.created_at)),
        _desc(cast(Any, Post.id)),
    )
    if offset > 0:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit + 1)

    result = await session.execute(query)
    rows = cast(list[PostRow], result.all())
    rows = _page(rows, response, offset=offset, limit=limit)

    return await build_post_responses(session, rows, viewer_id)


async def load_post_view(
    session: AsyncSession,
    post_id: int,
    viewer_id: int | None,
) -> PostResponse | None:
    result = await session.execute(_post_query().where(_eq(Post.id, post_id)).limit(1))
    row = result.first()
    if row is None:
        return None
    views = await build_post_responses(session, [cast(PostRow, tuple(row))], viewer_id)
    return views[0]


def _comment_query() -> Any:
    return select(
        cast(Any, Comment),
        cast(ColumnElement[int | None], User.id),
        cast(ColumnElement[str | None], User.name),
        cast(ColumnElement[str | None], User.avatar_url),
    ).outerjoin(User, _eq(User.id, Comment.author_id)).execution_options(populate_existing=True)


def _comment_response(row: CommentRow) -> CommentResponse:
    comment, user_id, user_name, user_avatar_url = row
    if comment.id is None:
        raise ValueError("Comment record missing identifier")
    return CommentResponse(
        id=comment.id,
        post_id=comment.post_id,
        content=comment.content,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        user=_author(user_id if user_id is not None else comment.author_id, user_name, user_avatar_url),
    )


async def list_comment_views(
    session: AsyncSession,
    response: Response,
    *,
    post_id: int,
    limit: int | None,
    offset: int,
) -> list[CommentResponse]:
    query = (
        _comment_query()
        .where(_eq(Comment.post_id, post_id))
        .order_by(
            _desc(cast(Any, Comment.created_at)),
            _desc(cast(Any, Comment.id)),
        )
    )
    if offset > 0:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit + 1)

    result = await session.execute(query)
    rows = cast(list[CommentRow], result.all())
    rows = _page(rows, response, offset=offset, limit=limit)

    return [_comment_response(row) for row in rows]


async def load_comment_view(session: AsyncSession, comment_id: int) -> CommentResponse | None:
    result = await session.execute(_comment_query().where(_eq(Comment.id, comment_id)).limit(1))
    row = result.first()
    if row is None:
        return None
    return _comment_response(cast(CommentRow, tuple(row)))
