from datetime import datetime

from pydantic import BaseModel, Field

from enums.notification_level import NotificationLevel
from models.base import utcnow


class NotificationDTO(BaseModel):
    title: str
    description: str = ""
    level: NotificationLevel = NotificationLevel.INFO
    created_at: datetime = Field(default_factory=utcnow)
