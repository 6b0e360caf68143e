"""Post, comment-thread and like endpoints."""

from __future__ import annotations

import logging
from typing import Annotated, Any, cast

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import CurrentPrincipal, DbSession, OptionalPrincipal, get_comment_notifier
from db.errors import is_foreign_key_violation, is_unique_violation
from models import Comment, Like, Post
from services.errors import InternalError, NotFoundError
from services.notifications import CommentNotifier
from services.ownership import POST_RESOURCE, delete_owned, update_owned
from .post_views import (
    MAX_PAGE_SIZE,
    list_comment_views,
    list_post_views,
    load_comment_view,
    load_post_view,
)
from .schemas import (
    CommentResponse,
    CommentWriteRequest,
    LikeStatusResponse,
    MessageResponse,
    PostCreatedResponse,
    PostResponse,
    PostUpdatedResponse,
    PostWriteRequest,
)

router = APIRouter(prefix="/posts", tags=["posts"])
logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def _get_post_or_404(session: AsyncSession, post_id: int) -> Post:
    result = await session.execute(select(Post).where(_eq(Post.id, post_id)).limit(1))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found.")
    return post


async def _count_likes(session: AsyncSession, post_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Like).where(_eq(Like.post_id, post_id))
    )
    return int(result.scalar_one() or 0)


@router.get("", response_model=list[PostResponse])
async def list_posts(
    response: Response,
    session: DbSession,
    principal: OptionalPrincipal,
    limit: Annotated[int | None, Query(ge=1, le=MAX_PAGE_SIZE)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[PostResponse]:
    return await list_post_views(
        session,
        response,
        limit=limit,
        offset=offset,
        viewer_id=principal.id if principal else None,
    )


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    session: DbSession,
    principal: OptionalPrincipal,
) -> PostResponse:
    view = await load_post_view(session, post_id, principal.id if principal else None)
    if view is None:
        raise NotFoundError("Post not found.")
    return view


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PostCreatedResponse)
async def create_post(
    payload: PostWriteRequest,
    session: DbSession,
    principal: CurrentPrincipal,
) -> PostCreatedResponse:
    post = Post(
        author_id=principal.id,
        title=payload.title,
        content=payload.content or None,
        date=payload.date,
        categories=payload.categories,
    )
    session.add(post)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_foreign_key_violation(exc):
            raise NotFoundError("User not found.") from exc
        raise InternalError(f"Failed to create post: {exc}") from exc
    await session.refresh(post)
    if post.id is None:
        raise InternalError("Post record missing identifier")

    logger.info("Post created", extra={"post_id": post.id, "author_id": principal.id})
    return PostCreatedResponse(message="Post successfully created!", inserted_id=post.id)


@router.put("/{post_id}", response_model=PostUpdatedResponse)
async def update_post(
    post_id: int,
    payload: PostWriteRequest,
    session: DbSession,
    principal: CurrentPrincipal,
) -> PostUpdatedResponse:
    async def refetch(refetch_session: AsyncSession) -> PostResponse:
        view = await load_post_view(refetch_session, post_id, principal.id)
        if view is None:
            raise NotFoundError("Post not found.")
        return view

    view = await update_owned(
        session,
        POST_RESOURCE,
        post_id,
        caller_id=principal.id,
        values={
            "title": payload.title,
            "content": payload.content or None,
            "date": payload.date,
            "categories": payload.categories,
        },
        refetch=refetch,
    )
    return PostUpdatedResponse(message="Post successfully updated!", post=view)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: int,
    session: DbSession,
    principal: CurrentPrincipal,
) -> MessageResponse:
    await delete_owned(session, POST_RESOURCE, post_id, caller_id=principal.id)
    logger.info("Post deleted", extra={"post_id": post_id, "author_id": principal.id})
    return MessageResponse(message="Post successfully deleted!")


@router.get("/{post_id}/comments", response_model=list[CommentResponse])
async def list_post_comments(
    post_id: int,
    response: Response,
    session: DbSession,
    limit: Annotated[int | None, Query(ge=1, le=MAX_PAGE_SIZE)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[CommentResponse]:
    return await list_comment_views(
        session,
        response,
        post_id=post_id,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/{post_id}/comments",
    status_code=status.HTTP_201_CREATED,
    response_model=CommentResponse,
)
async def create_comment(
    post_id: int,
    payload: CommentWriteRequest,
    background_tasks: BackgroundTasks,
    session: DbSession,
    principal: CurrentPrincipal,
    notifier: Annotated[CommentNotifier, Depends(get_comment_notifier)],
) -> CommentResponse:
    post = await _get_post_or_404(session, post_id)
    post_title = post.title
    post_author_id = post.author_id

    comment = Comment(post_id=post_id, author_id=principal.id, content=payload.content)
    session.add(comment)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_foreign_key_violation(exc):
            # Post deleted, or the caller's account removed, since the lookup.
            raise NotFoundError("Post not found.") from exc
        raise InternalError(f"Failed to create comment: {exc}") from exc
    await session.refresh(comment)
    if comment.id is None:
        raise InternalError("Comment record missing identifier")

    view = await load_comment_view(session, comment.id)
    if view is None:
        raise InternalError("Failed to retrieve newly created comment.")

    background_tasks.add_task(
        notifier.comment_created,
        post_id=post_id,
        post_title=post_title,
        post_author_id=post_author_id,
        comment_id=view.id,
        commenter_id=principal.id,
        commenter_name=view.user.name,
    )
    return view


@router.post("/{post_id}/likes", response_model=LikeStatusResponse)
async def like_post(
    post_id: int,
    session: DbSession,
    principal: CurrentPrincipal,
) -> LikeStatusResponse:
    await _get_post_or_404(session, post_id)

    existing = await session.execute(
        select(Like).where(_eq(Like.post_id, post_id), _eq(Like.user_id, principal.id))
    )
    if existing.scalar_one_or_none() is None:
        session.add(Like(user_id=principal.id, post_id=post_id))
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if is_foreign_key_violation(exc):
                raise NotFoundError("Post not found.") from exc
            if not is_unique_violation(exc):
                raise InternalError(f"Failed to like post: {exc}") from exc

    return LikeStatusResponse(liked=True, likes=await _count_likes(session, post_id))


@router.delete("/{post_id}/likes", response_model=LikeStatusResponse)
async def unlike_post(
    post_id: int,
    session: DbSession,
    principal: CurrentPrincipal,
) -> LikeStatusResponse:
    await _get_post_or_404(session, post_id)

    await session.execute(
        delete(Like).where(_eq(Like.post_id, post_id), _eq(Like.user_id, principal.id))
    )
    await session.commit()
    return LikeStatusResponse(liked=False, likes=await _count_likes(session, post_id))
