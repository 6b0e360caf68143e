"""Aggregate v1 router."""

from fastapi import APIRouter

from . import auth, comments, posts, realtime, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(posts.router)
api_router.include_router(comments.router)
api_router.include_router(users.router)
api_router.include_router(realtime.router)
