import logging
from collections import deque
from typing import Callable

from enums.notification_level import NotificationLevel
from models.notification import NotificationDTO

logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationDTO], None]


class NotificationCenter:
    """
    Advisory, non-blocking notifications for the UI.

    Subscribers are called synchronously; a failing subscriber is logged and
    never stops delivery to the others.
    """

    def __init__(self, history_size: int = 50):
        self._subscribers: list[Subscriber] = []
        self.recent: deque[NotificationDTO] = deque(maxlen=history_size)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)
        return lambda: self._subscribers.remove(subscriber)

    def publish(self, title: str, description: str = "",
                level: NotificationLevel = NotificationLevel.INFO) -> NotificationDTO:
        notification = NotificationDTO(title=title, description=description, level=level)
        self.recent.append(notification)
        logger.info(f"[Notification] {level.value}: {title} - {description}")
        for subscriber in list(self._subscribers):
            try:
                subscriber(notification)
            except Exception as e:
                logger.error(f"[Notification] Subscriber failed: {e}")
        return notification

    def info(self, title: str, description: str = "") -> NotificationDTO:
        return self.publish(title, description, NotificationLevel.INFO)

    def success(self, title: str, description: str = "") -> NotificationDTO:
        return self.publish(title, description, NotificationLevel.SUCCESS)

    def warning(self, title: str, description: str = "") -> NotificationDTO:
        return self.publish(title, description, NotificationLevel.WARNING)

    def error(self, title: str, description: str = "") -> NotificationDTO:
        return self.publish(title, description, NotificationLevel.ERROR)
