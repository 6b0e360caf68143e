"""Real-time notification payload schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

NEW_NOTIFICATION_EVENT = "new_notification"


class NotificationPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    post_id: int
    comment_id: int
    timestamp: datetime


class NotificationEnvelope(BaseModel):
    event: str
    data: NotificationPayload
