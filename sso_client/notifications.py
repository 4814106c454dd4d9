"""
User notifications
Transient messages for the view layer
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT


Notifier = Callable[[Notification], None]


def log_notifier(notification: Notification) -> None:
    """Default notifier when no view layer is attached"""
    log = logger.warning if notification.variant is NotificationVariant.DESTRUCTIVE else logger.info
    log(notification.title, description=notification.description)
