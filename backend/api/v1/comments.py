"""Comment edit and delete endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import CurrentPrincipal, DbSession
from services.errors import NotFoundError
from services.ownership import COMMENT_RESOURCE, delete_owned, update_owned
from .post_views import load_comment_view
from .schemas import (
    CommentDeletedResponse,
    CommentResponse,
    CommentUpdatedResponse,
    CommentWriteRequest,
)

router = APIRouter(prefix="/comments", tags=["comments"])
logger = logging.getLogger(__name__)


@router.put("/{comment_id}", response_model=CommentUpdatedResponse)
async def update_comment(
    comment_id: int,
    payload: CommentWriteRequest,
    session: DbSession,
    principal: CurrentPrincipal,
) -> CommentUpdatedResponse:
    async def refetch(refetch_session: AsyncSession) -> CommentResponse:
        view = await load_comment_view(refetch_session, comment_id)
        if view is None:
            raise NotFoundError("Comment not found.")
        return view

    view = await update_owned(
        session,
        COMMENT_RESOURCE,
        comment_id,
        caller_id=principal.id,
        values={"content": payload.content},
        refetch=refetch,
    )
    return CommentUpdatedResponse(message="Comment updated successfully", comment=view)


@router.delete("/{comment_id}", response_model=CommentDeletedResponse)
async def delete_comment(
    comment_id: int,
    session: DbSession,
    principal: CurrentPrincipal,
) -> CommentDeletedResponse:
    await delete_owned(session, COMMENT_RESOURCE, comment_id, caller_id=principal.id)
    logger.info("Comment deleted", extra={"comment_id": comment_id, "author_id": principal.id})
    return CommentDeletedResponse(message="Comment deleted successfully", comment_id=comment_id)
