"""Resolution of who may touch which case.

Three doors lead to a case: a reply token (anonymous reporter), a session
owning the case (identified reporter) and the manager role. Each resolver
returns a CaseAccess or raises before any data is read.
"""

import enum
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.identity import Actor, authorize
from app.core.manager import ManagerIdentity, ManagerResolver
from app.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from app.models.audit import ActorRole
from app.models.report import Report, SenderRole
from app.services.store import CaseStore

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid token"


class Viewer(str, enum.Enum):
    """How the caller reached the case."""

    ANONYMOUS = "anonymous"
    REPORTER = "reporter"
    MANAGER = "manager"


@dataclass
class CaseAccess:
    """A case together with the verified viewer."""

    report: Report
    viewer: Viewer
    actor: Actor | None = None

    @property
    def is_manager(self) -> bool:
        return self.viewer == Viewer.MANAGER

    @property
    def actor_role(self) -> ActorRole:
        return ActorRole.MANAGER if self.is_manager else ActorRole.REPORTER

    @property
    def sender_role(self) -> SenderRole:
        return SenderRole.MANAGER if self.is_manager else SenderRole.REPORTER

    @property
    def actor_user_id(self) -> UUID | None:
        if self.viewer == Viewer.ANONYMOUS or self.actor is None:
            return None
        return self.actor.id


class AccessResolver:
    """Builds CaseAccess objects for the three kinds of caller."""

    def __init__(self, db: AsyncSession, resolver: ManagerResolver, manager_role: str):
        self.db = db
        self.store = CaseStore(db)
        self.resolver = resolver
        self.manager_role = manager_role

    async def for_reply_token(self, protocol: str, raw_token: str | None) -> CaseAccess:
        """Unknown protocol and wrong token fail identically."""
        report = await self.store.get_by_protocol(protocol)
        if report is None or not raw_token:
            raise AuthorizationError(INVALID_TOKEN_MESSAGE)
        if not await self.store.validate_reply_token(report.id, raw_token):
            raise AuthorizationError(INVALID_TOKEN_MESSAGE)
        return CaseAccess(report=report, viewer=Viewer.ANONYMOUS)

    async def for_reporter(self, report_id: UUID, actor: Actor | None) -> CaseAccess:
        """Ownership mismatch is reported as not found."""
        if actor is None:
            raise AuthenticationError()
        report = await self.store.get_owned_report(report_id, actor.id)
        if report is None:
            raise NotFoundError("Report")
        return CaseAccess(report=report, viewer=Viewer.REPORTER, actor=actor)

    async def manager(self, actor: Actor | None) -> ManagerIdentity:
        """Role gate plus manager resolution.

        Raises:
            AuthorizationError: The actor does not hold the manager role.
            ConfigurationError: No manager user exists.
        """
        authorize(actor, self.manager_role)
        return await self.resolver.resolve(self.db)

    async def for_manager(self, report_id: UUID, actor: Actor | None) -> CaseAccess:
        manager = await self.manager(actor)
        report = await self.store.get_managed_report(report_id, manager.id)
        if report is None:
            raise NotFoundError("Report")
        return CaseAccess(report=report, viewer=Viewer.MANAGER, actor=actor)
