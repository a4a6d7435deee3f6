"""Resolution of the designated whistleblowing case manager."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConfigurationError
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagerIdentity:
    """The resolved case manager."""

    id: UUID
    email: str | None
    display_name: str | None = None


class ManagerResolver:
    """Looks up the active user holding the manager role, with a short TTL cache.

    Within the TTL a stale answer may be returned; that is acceptable for a
    role that changes hands rarely. Pass a fake clock in tests.
    """

    def __init__(
        self,
        role: str = "wb_manager",
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.role = role
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: ManagerIdentity | None = None
        self._expires_at = 0.0

    async def resolve(self, db: AsyncSession) -> ManagerIdentity:
        """Return the current manager.

        Raises:
            ConfigurationError: No active user holds the manager role.
        """
        now = self._clock()
        if self._cached is not None and now < self._expires_at:
            return self._cached

        result = await db.execute(
            select(User)
            .where(User.role == self.role, User.is_active.is_(True))
            .order_by(User.created_at.asc(), User.id.asc())
            .limit(1)
        )
        user = result.scalar_one_or_none()
        if user is None:
            logger.error("No active user with role %r; whistleblowing intake is unusable", self.role)
            raise ConfigurationError(f"No active user with role '{self.role}'")

        self._cached = ManagerIdentity(id=user.id, email=user.email, display_name=user.display_name)
        self._expires_at = now + self.ttl_seconds
        return self._cached

    def invalidate(self) -> None:
        self._cached = None
        self._expires_at = 0.0
