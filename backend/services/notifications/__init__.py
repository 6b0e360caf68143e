"""Notification domain services."""

from .fanout import CommentNotifier, comment_message
from .hub import ChannelPublisher, NotificationHub
from .schemas import NEW_NOTIFICATION_EVENT, NotificationEnvelope, NotificationPayload

__all__ = [
    "ChannelPublisher",
    "CommentNotifier",
    "NEW_NOTIFICATION_EVENT",
    "NotificationEnvelope",
    "NotificationHub",
    "NotificationPayload",
    "comment_message",
]
