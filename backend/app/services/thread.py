"""Case threads: encrypted, append-only messaging between reporter and manager."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.crypto import PayloadCipher
from app.core.identity import Actor
from app.core.manager import ManagerIdentity
from app.exceptions import AuthenticationError, ValidationError
from app.models.audit import AuditAction
from app.models.report import Message, Report, ReportStatus, SenderRole
from app.notifications.channels.base import NotificationMessage
from app.notifications.notifier import Notifier, resolve_recipients
from app.services.access import AccessResolver, CaseAccess
from app.services.audit import AuditService
from app.services.store import CaseStore
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

BODY_MAX_LENGTH = 20_000


@dataclass
class ThreadMessage:
    id: UUID
    sender_role: SenderRole
    body: str
    created_at: datetime


@dataclass
class ThreadView:
    """Decrypted case as shown to whoever opened the thread."""

    report_id: UUID
    protocol: str
    title: str
    status: ReportStatus
    description: str
    is_anonymous: bool
    created_at: datetime
    acknowledged_at: datetime | None
    first_response_at: datetime | None
    last_update: datetime
    messages: list[ThreadMessage] = field(default_factory=list)


class ThreadService:
    """Reads and appends to case threads for all three kinds of caller."""

    def __init__(
        self,
        db: AsyncSession,
        cipher: PayloadCipher,
        access: AccessResolver,
        notifier: Notifier,
        settings: Settings,
    ):
        self.db = db
        self.store = CaseStore(db)
        self.audit = AuditService(db)
        self.cipher = cipher
        self.access = access
        self.notifier = notifier
        self.settings = settings

    # Anonymous reporter

    async def get_anonymous_thread(self, protocol: str, raw_token: str | None) -> ThreadView:
        access = await self.access.for_reply_token(protocol, raw_token)
        return await self.build_view(access.report)

    async def post_anonymous_message(
        self, protocol: str, raw_token: str | None, body: str
    ) -> ThreadMessage:
        text = self._validate_body(body)
        access = await self.access.for_reply_token(protocol, raw_token)
        message = await self._append(access, text)
        await self._notify_manager(access.report)
        return message

    # Identified reporter

    async def list_my_reports(self, actor: Actor | None) -> list[Report]:
        if actor is None:
            raise AuthenticationError()
        return await self.store.list_reporter_reports(actor.id)

    async def get_my_report(self, actor: Actor | None, report_id: UUID) -> ThreadView:
        access = await self.access.for_reporter(report_id, actor)
        return await self.build_view(access.report)

    async def post_my_message(self, actor: Actor | None, report_id: UUID, body: str) -> ThreadMessage:
        text = self._validate_body(body)
        access = await self.access.for_reporter(report_id, actor)
        message = await self._append(access, text)
        await self._notify_manager(access.report)
        return message

    # Manager

    async def post_manager_message(self, actor: Actor | None, report_id: UUID, body: str) -> ThreadMessage:
        """Append a manager reply; the first one stamps first_response_at."""
        text = self._validate_body(body)
        access = await self.access.for_manager(report_id, actor)
        message = await self._append(access, text)
        await self._notify_reporter(access.report)
        return message

    # Shared

    async def build_view(self, report: Report) -> ThreadView:
        messages = await self.store.list_messages(report.id)
        return ThreadView(
            report_id=report.id,
            protocol=report.protocol_code,
            title=report.title,
            status=report.status,
            description=self.cipher.decrypt_field(report.description_encrypted, "description"),
            is_anonymous=report.is_anonymous,
            created_at=report.created_at,
            acknowledged_at=report.acknowledged_at,
            first_response_at=report.first_response_at,
            last_update=report.last_update,
            messages=[self.decrypt_message(m) for m in messages],
        )

    def decrypt_message(self, message: Message) -> ThreadMessage:
        return ThreadMessage(
            id=message.id,
            sender_role=message.sender_role,
            body=self.cipher.decrypt_field(message.body_encrypted, "body"),
            created_at=message.created_at,
        )

    def _validate_body(self, body: str | None) -> str:
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message body is required")
        if len(text) > BODY_MAX_LENGTH:
            raise ValidationError(f"Message body must be at most {BODY_MAX_LENGTH} characters")
        return text

    async def _append(self, access: CaseAccess, text: str) -> ThreadMessage:
        report = access.report
        now = utcnow()
        message = await self.store.add_message(
            report.id,
            access.sender_role,
            self.cipher.encrypt({"body": text}),
            created_at=now,
        )
        if access.is_manager:
            await self.store.stamp_once(report, "first_response_at", now)
        self.store.touch(report, now)
        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.MESSAGE_SENT,
            actor_role=access.actor_role,
            actor_user_id=access.actor_user_id,
            meta={"message_id": str(message.id)},
        )
        await self.db.commit()
        return ThreadMessage(
            id=message.id,
            sender_role=message.sender_role,
            body=text,
            created_at=message.created_at,
        )

    async def _notify_manager(self, report: Report) -> None:
        manager = ManagerIdentity(id=report.manager_id, email=None)
        manager_user = await self.store.get_user(report.manager_id)
        if manager_user is not None:
            manager = ManagerIdentity(id=manager_user.id, email=manager_user.email)
        message = NotificationMessage(
            subject=f"[WB] New message on {report.protocol_code}",
            body=(
                f"The reporter added a message to case {report.protocol_code}.\n\n"
                "Sign in to the case desk to read it."
            ),
            category="new_message",
        )
        await self.notifier.send_best_effort(message, resolve_recipients(self.settings, manager))

    async def _notify_reporter(self, report: Report) -> None:
        """Identified reporters get a content-free heads-up; anonymous ones cannot."""
        if report.is_anonymous:
            return
        reporter = await self.store.get_user(report.reporter_user_id)
        if reporter is None or not reporter.email:
            return
        message = NotificationMessage(
            subject=f"[WB] Reply on your report {report.protocol_code}",
            body=(
                f"The case manager replied on report {report.protocol_code}.\n\n"
                "Sign in to read the reply."
            ),
            category="manager_reply",
        )
        await self.notifier.send_best_effort(message, [reporter.email])
