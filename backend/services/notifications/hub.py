"""In-process registry of live notification sockets keyed by channel."""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SupportsSendJson(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class ChannelPublisher(Protocol):
    async def publish(self, channel: str, message: dict[str, Any]) -> int: ...


class NotificationHub:
    """Tracks which sockets joined which user channel.

    Membership changes only on socket connect/disconnect. Publishing is
    best-effort: a channel with no members drops the message, and a socket
    that fails to send is removed from its channel.
    """

    def __init__(self) -> None:
        self._channels: dict[str, set[SupportsSendJson]] = {}

    def join(self, channel: str, socket: SupportsSendJson) -> None:
        self._channels.setdefault(channel, set()).add(socket)

    def leave(self, channel: str, socket: SupportsSendJson) -> None:
        members = self._channels.get(channel)
        if members is None:
            return
        members.discard(socket)
        if not members:
            del self._channels[channel]

    def member_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """Send ``message`` to every socket in ``channel``; return deliveries."""
        members = list(self._channels.get(channel, ()))
        if not members:
            logger.debug("No live sockets for channel, dropping message", extra={"channel": channel})
            return 0

        delivered = 0
        for socket in members:
            try:
                await socket.send_json(message)
            except Exception as exc:
                # Connection already gone; its handler will also call leave().
                logger.info(
                    "Dropping socket after failed send",
                    extra={"channel": channel, "error": repr(exc)},
                )
                self.leave(channel, socket)
                continue
            delivered += 1
        return delivered
