"""Notification channels for WB Desk."""

from app.notifications.channels.base import (
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
    NotificationMessage,
)
from app.notifications.channels.email import EmailChannel

__all__ = [
    "DeliveryResult",
    "DeliveryStatus",
    "EmailChannel",
    "NotificationChannel",
    "NotificationMessage",
]
