"""Outbound notifications."""

from app.notifications.notifier import Notifier, create_notifier, resolve_recipients

__all__ = ["Notifier", "create_notifier", "resolve_recipients"]
