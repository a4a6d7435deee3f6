"""Base notification channel interface.

Defines the abstract interface for outbound notification delivery.
Messages never carry report content, only a pointer to log in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class DeliveryStatus(str, Enum):
    """Status of notification delivery."""

    SENT = "sent"
    FAILED = "failed"
    DISABLED = "disabled"
    INVALID_RECIPIENT = "invalid_recipient"


@dataclass
class NotificationMessage:
    """Channel-agnostic message."""

    subject: str
    body: str
    reply_to: str | None = None
    category: str | None = None  # new_report, new_message, manager_reply, deadline


@dataclass
class DeliveryResult:
    """Result of a notification delivery attempt."""

    status: DeliveryStatus
    recipients: list[str]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if delivery was successful."""
        return self.status == DeliveryStatus.SENT


class NotificationChannel(ABC):
    """Abstract base class for notification delivery channels."""

    name: str = "base"
    display_name: str = "Base Channel"

    @abstractmethod
    async def send(
        self,
        message: NotificationMessage,
        recipients: list[str],
    ) -> DeliveryResult:
        """Send a notification message.

        Args:
            message: The message to send
            recipients: Channel-specific recipient identifiers

        Returns:
            DeliveryResult with status and details
        """
        ...

    @abstractmethod
    async def validate_config(self) -> bool:
        """Validate channel configuration.

        Returns:
            True if configuration is valid and channel is operational
        """
        ...

    async def health_check(self) -> dict[str, Any]:
        """Check channel health."""
        try:
            is_valid = await self.validate_config()
            return {
                "status": "healthy" if is_valid else "unhealthy",
                "channel": self.name,
                "configured": is_valid,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "channel": self.name,
                "error": str(e),
            }
