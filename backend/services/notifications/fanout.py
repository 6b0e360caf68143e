"""Comment notification fan-out."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .hub import ChannelPublisher
from .schemas import NEW_NOTIFICATION_EVENT, NotificationEnvelope, NotificationPayload

logger = logging.getLogger(__name__)

DEFAULT_POST_TITLE = "Post"


def comment_message(commenter_name: str | None, post_title: str | None) -> str:
    who = commenter_name or "Someone"
    return f'{who} commented on your post "{post_title or DEFAULT_POST_TITLE}"'


class CommentNotifier:
    """Pushes a ``new_notification`` event to a post author's channel."""

    def __init__(self, publisher: ChannelPublisher) -> None:
        self._publisher = publisher

    async def comment_created(
        self,
        *,
        post_id: int,
        post_title: str | None,
        post_author_id: int,
        comment_id: int,
        commenter_id: int,
        commenter_name: str | None,
        now: datetime | None = None,
    ) -> bool:
        """Emit one event unless the author commented on their own post.

        Returns True when an event was emitted, whether or not anyone was
        listening.
        """
        if post_author_id == commenter_id:
            return False

        envelope = NotificationEnvelope(
            event=NEW_NOTIFICATION_EVENT,
            data=NotificationPayload(
                message=comment_message(commenter_name, post_title),
                post_id=post_id,
                comment_id=comment_id,
                timestamp=now or datetime.now(timezone.utc),
            ),
        )
        try:
            delivered = await self._publisher.publish(
                str(post_author_id),
                envelope.model_dump(mode="json", by_alias=True),
            )
        except Exception:
            logger.exception(
                "Failed to publish comment notification",
                extra={"post_id": post_id, "comment_id": comment_id},
            )
            return True
        logger.debug(
            "Comment notification published",
            extra={"recipient_id": post_author_id, "deliveries": delivered},
        )
        return True
