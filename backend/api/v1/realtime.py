"""Notification socket: token-gated handshake, one channel per user."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from services.auth import Principal, TokenService
from services.errors import AuthenticationError
from services.notifications import NotificationHub

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


def authenticate_handshake(tokens: TokenService, token: str | None) -> Principal:
    """Verify the handshake token; there is no anonymous socket mode."""
    if not token:
        raise AuthenticationError("Authentication error: No token provided", code="MissingToken")
    return tokens.verify(token)


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket) -> None:
    tokens: TokenService = websocket.app.state.token_service
    hub: NotificationHub = websocket.app.state.notification_hub

    try:
        principal = authenticate_handshake(tokens, websocket.query_params.get("token"))
    except AuthenticationError as exc:
        logger.info("Rejected notification socket handshake", extra={"code": exc.code})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    websocket.state.principal = principal
    await websocket.accept()

    resolved = getattr(websocket.state, "principal", None)
    if not isinstance(resolved, Principal):
        logger.warning("Socket accepted without principal, disconnecting")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = resolved.channel
    hub.join(channel, websocket)
    logger.info("Notification socket connected", extra={"user_id": resolved.id})
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.leave(channel, websocket)
        logger.info("Notification socket disconnected", extra={"user_id": resolved.id})
