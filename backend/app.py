"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.v1.router import api_router
from core import Settings, configure_logging, get_settings
from db import build_engine, build_session_maker
from services import ClientIdentifier, MediaStore, RateLimitMiddleware, build_rate_limiter
from services.auth import GoogleOAuthClient, TokenService
from services.notifications import CommentNotifier, NotificationHub

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the API with collaborators constructed once from ``settings``."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not app.state.token_service.is_configured:
            logger.error("JWT_SECRET is not set; token issuance and verification will fail")
        yield
        await engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    engine = build_engine(settings.database_url)
    hub = NotificationHub()
    app.state.settings = settings
    app.state.session_maker = build_session_maker(engine)
    app.state.media_store = MediaStore.from_settings(settings)
    app.state.rate_limiter = build_rate_limiter(settings)
    app.state.token_service = TokenService.from_settings(settings)
    app.state.oauth_client = GoogleOAuthClient.from_settings(settings)
    app.state.notification_hub = hub
    app.state.comment_notifier = CommentNotifier(hub)

    app.add_middleware(
        RateLimitMiddleware,
        client_identifier=ClientIdentifier.from_settings(settings),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/", tags=["health"])
    async def root() -> dict[str, str]:
        return {"message": "Welcome to the blog API!"}

    return app
