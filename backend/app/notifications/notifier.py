"""Best-effort notification dispatch.

Called only after the primary write has committed. The outcome is returned
for logging and tests but never becomes part of an operation's result.
"""

import logging
from typing import Any

from app.core.manager import ManagerIdentity
from app.exceptions import DependencyError
from app.notifications.channels.base import NotificationChannel, NotificationMessage
from app.notifications.channels.email import EmailChannel

logger = logging.getLogger(__name__)


def resolve_recipients(settings: object, manager: ManagerIdentity | None) -> list[str]:
    """WB_NOTIFY_TO overrides the manager's own address when set."""
    override = list(getattr(settings, "wb_notify_to", []) or [])
    if override:
        return override
    if manager is not None and manager.email:
        return [manager.email]
    return []


class Notifier:
    """Wraps a channel so that delivery can never fail the caller."""

    def __init__(self, channel: NotificationChannel, reply_to: str | None = None):
        self.channel = channel
        self.reply_to = reply_to

    @property
    def enabled(self) -> bool:
        return bool(getattr(self.channel, "enabled", True))

    async def send_best_effort(
        self,
        message: NotificationMessage,
        recipients: list[str],
    ) -> bool:
        """Attempt delivery; log and swallow any failure."""
        if message.reply_to is None:
            message.reply_to = self.reply_to
        try:
            result = await self.channel.send(message, recipients)
            if not result.success:
                raise DependencyError(self.channel.name, result.error)
        except DependencyError as e:
            logger.warning("Notification '%s' not delivered: %s", message.category, e.message)
            return False
        except Exception as e:
            logger.warning(
                "Notification '%s' raised %s: %s", message.category, e.__class__.__name__, e
            )
            return False
        return True

    async def health_check(self) -> dict[str, Any]:
        return await self.channel.health_check()


def create_notifier(settings: object) -> Notifier:
    return Notifier(
        EmailChannel.from_settings(settings),
        reply_to=getattr(settings, "wb_mail_reply_to", None),
    )
