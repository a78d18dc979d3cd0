"""Routing of server-pushed notices and notifications."""

import logging
from typing import Optional

from .types import Notice, NoticeHandler, Notification, NotificationHandler

logger = logging.getLogger(__name__)


class EventRouter:
    """Holds at most one notice handler and one notification handler.

    Registering a handler replaces the previous one. Events without a handler
    are dropped.
    """

    def __init__(self) -> None:
        self.notice_handler: Optional[NoticeHandler] = None
        self.notification_handler: Optional[NotificationHandler] = None

    def dispatch_notice(self, notice: Notice) -> None:
        handler = self.notice_handler
        if handler is None:
            logger.debug(f"Dropped {notice.severity}: {notice.message}")
            return
        handler(notice)

    def dispatch_notification(self, notification: Notification) -> None:
        handler = self.notification_handler
        if handler is None:
            logger.debug(f"Dropped notification on channel {notification.channel!r}")
            return
        handler(notification)
