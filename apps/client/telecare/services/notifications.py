"""User-facing notifications (the console's toast queue)."""
from __future__ import annotations

import enum
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Deque

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class NotificationLevel(str, enum.Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: float

    def as_dict(self) -> dict:
        data = asdict(self)
        data["level"] = self.level.value
        return data


class Notifier:
    """Bounded queue of notifications waiting to be shown to the user."""

    def __init__(self, max_pending: int = 100) -> None:
        self._pending: Deque[Notification] = deque(maxlen=max_pending)

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message, created_at=time.time())
        self._pending.append(notification)
        logger.log(_LOG_LEVELS[level.value], "notify[%s] %s", level.value, message)
        return notification

    def success(self, message: str) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> Notification:
        return self.notify(NotificationLevel.INFO, message)

    def warning(self, message: str) -> Notification:
        return self.notify(NotificationLevel.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.notify(NotificationLevel.ERROR, message)

    def pending(self) -> list[Notification]:
        return list(self._pending)

    def drain(self) -> list[Notification]:
        """Return and forget every pending notification."""

        drained = list(self._pending)
        self._pending.clear()
        return drained
