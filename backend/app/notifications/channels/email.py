"""SMTP email channel.

Delivery runs in a worker thread so the blocking smtplib client never stalls
the event loop.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from app.notifications.channels.base import (
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
    NotificationMessage,
)

logger = logging.getLogger(__name__)


class EmailChannel(NotificationChannel):
    """Plain-text email over SMTP. Disabled when no host is configured."""

    name = "email"
    display_name = "Email"

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "wb-desk@localhost",
        use_tls: bool = False,
        starttls: bool = True,
        timeout: float = 15.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.starttls = starttls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: object) -> "EmailChannel":
        return cls(
            host=getattr(settings, "smtp_host", ""),
            port=getattr(settings, "smtp_port", 587),
            username=getattr(settings, "smtp_user", ""),
            password=getattr(settings, "smtp_password", ""),
            sender=getattr(settings, "smtp_from", "wb-desk@localhost"),
            use_tls=getattr(settings, "smtp_use_tls", False),
            starttls=getattr(settings, "smtp_starttls", True),
            timeout=getattr(settings, "smtp_timeout_seconds", 15.0),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    async def validate_config(self) -> bool:
        return self.enabled and bool(self.sender)

    def _build(self, message: NotificationMessage, recipients: list[str]) -> EmailMessage:
        mail = EmailMessage()
        mail["From"] = self.sender
        mail["To"] = ", ".join(recipients)
        mail["Subject"] = message.subject
        if message.reply_to:
            mail["Reply-To"] = message.reply_to
        mail.set_content(message.body)
        return mail

    def _deliver(self, mail: EmailMessage) -> None:
        client_cls = smtplib.SMTP_SSL if self.use_tls else smtplib.SMTP
        with client_cls(self.host, self.port, timeout=self.timeout) as client:
            if self.starttls and not self.use_tls:
                client.starttls()
            if self.username:
                client.login(self.username, self.password)
            client.send_message(mail)

    async def send(
        self,
        message: NotificationMessage,
        recipients: list[str],
    ) -> DeliveryResult:
        if not self.enabled:
            return DeliveryResult(
                status=DeliveryStatus.DISABLED,
                recipients=recipients,
                error="smtp_disabled",
            )
        if not recipients:
            return DeliveryResult(
                status=DeliveryStatus.INVALID_RECIPIENT,
                recipients=recipients,
                error="no_recipients",
            )

        mail = self._build(message, recipients)
        try:
            await asyncio.to_thread(self._deliver, mail)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP delivery to %d recipient(s) failed: %s", len(recipients), e)
            return DeliveryResult(
                status=DeliveryStatus.FAILED,
                recipients=recipients,
                error=str(e),
            )

        logger.info("Email '%s' sent to %d recipient(s)", message.subject, len(recipients))
        return DeliveryResult(status=DeliveryStatus.SENT, recipients=recipients)
