"""Ownership-checked, transactional update and delete of user-owned rows.

Every mutation runs in one transaction on the caller's session:

1. read the owner id by primary key (``NotFoundError`` when missing);
2. compare it with the caller (``ForbiddenError`` when different);
3. run the scoped UPDATE/DELETE (``NotFoundError`` when it touched no row);
4. optionally re-read the post-mutation view;
5. commit.

Any failure rolls the transaction back before the error propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, cast

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement
from sqlalchemy.sql.dml import Delete, Update

from models import Comment, Post
from services.errors import BlogError, ForbiddenError, InternalError, NotFoundError

logger = logging.getLogger(__name__)

ViewT = TypeVar("ViewT")
Refetch = Callable[[AsyncSession], Awaitable[ViewT]]


@dataclass(frozen=True)
class OwnedResource:
    """Describes where a resource keeps its primary key and owner."""

    label: str
    model: type[Any]
    id_column: Any
    owner_column: Any

    def by_id(self, resource_id: int) -> ColumnElement[bool]:
        return cast(ColumnElement[bool], self.id_column == resource_id)


POST_RESOURCE = OwnedResource("Post", Post, Post.id, Post.author_id)
# Comments are owned by their author only; the post author cannot edit them.
COMMENT_RESOURCE = OwnedResource("Comment", Comment, Comment.id, Comment.author_id)


async def _fetch_owner_id(
    session: AsyncSession,
    resource: OwnedResource,
    resource_id: int,
) -> int | None:
    result = await session.execute(
        select(resource.owner_column)
        .where(resource.by_id(resource_id))
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _run_owned_mutation(
    session: AsyncSession,
    resource: OwnedResource,
    resource_id: int,
    *,
    caller_id: int,
    statement: Update | Delete,
    refetch: Refetch[ViewT] | None,
) -> ViewT | None:
    try:
        owner_id = await _fetch_owner_id(session, resource, resource_id)
        if owner_id is None:
            raise NotFoundError(f"{resource.label} not found.")
        if owner_id != caller_id:
            raise ForbiddenError(
                f"You are not authorized to modify this {resource.label.lower()}."
            )

        result = await session.execute(statement)
        if result.rowcount == 0:
            raise NotFoundError(f"{resource.label} not found.")

        view = await refetch(session) if refetch is not None else None
        await session.commit()
        return view
    except BlogError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception(
            "Ownership-checked mutation failed",
            extra={"resource": resource.label, "resource_id": resource_id},
        )
        raise InternalError(f"Failed to modify {resource.label.lower()}: {exc}") from exc
    except Exception:
        await session.rollback()
        raise


async def update_owned(
    session: AsyncSession,
    resource: OwnedResource,
    resource_id: int,
    *,
    caller_id: int,
    values: Mapping[str, Any],
    refetch: Refetch[ViewT],
) -> ViewT:
    """Apply ``values`` when ``caller_id`` owns the row; return the re-read view."""
    statement = (
        update(resource.model)
        .where(resource.by_id(resource_id))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    view = await _run_owned_mutation(
        session,
        resource,
        resource_id,
        caller_id=caller_id,
        statement=statement,
        refetch=refetch,
    )
    return cast(ViewT, view)


async def delete_owned(
    session: AsyncSession,
    resource: OwnedResource,
    resource_id: int,
    *,
    caller_id: int,
) -> None:
    """Delete the row when ``caller_id`` owns it; dependents cascade in the store."""
    statement = (
        delete(resource.model)
        .where(resource.by_id(resource_id))
        .execution_options(synchronize_session=False)
    )
    await _run_owned_mutation(
        session,
        resource,
        resource_id,
        caller_id=caller_id,
        statement=statement,
        refetch=None,
    )
