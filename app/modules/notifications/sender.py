"""Delivery boundary for client notifications."""

from __future__ import annotations

import logging
from typing import Protocol

from app.modules.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Channel adapter (SMS gateway, mailer) used by the outbox worker."""

    async def send_confirmation(self, notification: Notification) -> None: ...

    async def send_cancellation(self, notification: Notification) -> None: ...


class LoggingNotificationSender:
    """Default sender: writes the message to the log instead of a gateway."""

    async def send_confirmation(self, notification: Notification) -> None:
        logger.info(
            "Confirmation for user %s via %s: %s",
            notification.user_id,
            notification.channel,
            notification.body,
        )

    async def send_cancellation(self, notification: Notification) -> None:
        logger.info(
            "Cancellation for user %s via %s: %s",
            notification.user_id,
            notification.channel,
            notification.body,
        )
