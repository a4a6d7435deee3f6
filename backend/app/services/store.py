"""Case store queries shared by the whistleblowing services and jobs."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.tokens import hash_token, tokens_match
from app.models.attachment import Attachment, AvStatus
from app.models.audit import ActorRole, AuditAction
from app.models.report import Message, ReplyToken, Report, ReportStatus, SenderRole
from app.models.user import Category, User
from app.services.audit import AuditService
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


def escape_like(term: str) -> str:
    """Make LIKE wildcards in user input match literally (escape char is a backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CaseStore:
    """Thin query layer over the wb_* tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Reports

    async def get_report(self, report_id: UUID) -> Report | None:
        return await self.db.get(Report, report_id)

    async def get_by_protocol(self, protocol_code: str) -> Report | None:
        result = await self.db.execute(
            select(Report).where(Report.protocol_code == protocol_code)
        )
        return result.scalar_one_or_none()

    async def get_owned_report(self, report_id: UUID, user_id: UUID) -> Report | None:
        result = await self.db.execute(
            select(Report).where(
                Report.id == report_id,
                Report.reporter_user_id == user_id,
                Report.is_anonymous.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def get_managed_report(self, report_id: UUID, manager_id: UUID) -> Report | None:
        result = await self.db.execute(
            select(Report).where(Report.id == report_id, Report.manager_id == manager_id)
        )
        return result.scalar_one_or_none()

    async def list_reporter_reports(self, user_id: UUID) -> list[Report]:
        result = await self.db.execute(
            select(Report)
            .where(Report.reporter_user_id == user_id, Report.is_anonymous.is_(False))
            .order_by(Report.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_manager_reports(
        self,
        manager_id: UUID,
        status: ReportStatus | None = None,
        search: str | None = None,
        limit: int = 200,
    ) -> list[Report]:
        query = select(Report).where(Report.manager_id == manager_id)
        if status is not None:
            query = query.where(Report.status == status)
        if search:
            pattern = f"%{escape_like(search)}%"
            query = query.where(
                or_(
                    Report.protocol_code.ilike(pattern, escape="\\"),
                    Report.title.ilike(pattern, escape="\\"),
                )
            )
        query = query.order_by(Report.last_update.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def touch(self, report: Report, moment: datetime | None = None) -> None:
        report.last_update = moment or utcnow()

    async def stamp_once(self, report: Report, column: str, moment: datetime) -> bool:
        """Set a nullable timestamp only if it is still null.

        The null check happens in the UPDATE itself, so concurrent callers
        cannot overwrite each other.

        Returns:
            True if this call set the value.
        """
        target = getattr(Report, column)
        result = await self.db.execute(
            update(Report)
            .where(Report.id == report.id, target.is_(None))
            .values({column: moment})
            .execution_options(synchronize_session=False)
        )
        stamped = result.rowcount == 1
        if stamped:
            set_committed_value(report, column, moment)
        return stamped

    # Categories

    async def get_active_category(self, category_id: int | None) -> Category | None:
        if category_id is None:
            return None
        result = await self.db.execute(
            select(Category).where(Category.id == category_id, Category.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def list_active_categories(self) -> list[Category]:
        result = await self.db.execute(
            select(Category).where(Category.is_active.is_(True)).order_by(Category.name.asc())
        )
        return list(result.scalars().all())

    async def get_user(self, user_id: UUID | None) -> User | None:
        if user_id is None:
            return None
        return await self.db.get(User, user_id)

    # Reply tokens

    async def add_reply_token(self, report_id: UUID, raw_token: str, validity: timedelta) -> ReplyToken:
        token = ReplyToken(
            report_id=report_id,
            token_hash=hash_token(raw_token),
            expires_at=utcnow() + validity,
        )
        self.db.add(token)
        await self.db.flush()
        return token

    async def validate_reply_token(self, report_id: UUID, raw_token: str) -> bool:
        """True if an unexpired token for this report hashes to raw_token."""
        if not raw_token:
            return False
        result = await self.db.execute(
            select(ReplyToken).where(
                ReplyToken.report_id == report_id,
                ReplyToken.token_hash == hash_token(raw_token),
                ReplyToken.expires_at > utcnow(),
            )
        )
        token = result.scalars().first()
        return token is not None and tokens_match(token.token_hash, raw_token)

    # Messages

    async def add_message(
        self,
        report_id: UUID,
        role: SenderRole,
        body_encrypted: bytes,
        created_at: datetime | None = None,
    ) -> Message:
        message = Message(
            report_id=report_id,
            sender_role=role,
            body_encrypted=body_encrypted,
            created_at=created_at or utcnow(),
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def list_messages(self, report_id: UUID) -> list[Message]:
        result = await self.db.execute(
            select(Message)
            .where(Message.report_id == report_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    # Attachments

    async def get_attachment(self, attachment_id: UUID) -> Attachment | None:
        return await self.db.get(Attachment, attachment_id)

    async def list_attachments(self, report_id: UUID, clean_only: bool) -> list[Attachment]:
        query = select(Attachment).where(Attachment.report_id == report_id)
        if clean_only:
            query = query.where(Attachment.av_status == AvStatus.CLEAN)
        result = await self.db.execute(query.order_by(Attachment.created_at.asc()))
        return list(result.scalars().all())

    # Jobs

    async def list_closed_before(self, cutoff: datetime) -> list[Report]:
        result = await self.db.execute(
            select(Report)
            .where(Report.closed_at.is_not(None), Report.closed_at < cutoff)
            .order_by(Report.closed_at.asc())
        )
        return list(result.scalars().all())

    async def list_unacknowledged(self, manager_id: UUID, created_before: datetime) -> list[Report]:
        result = await self.db.execute(
            select(Report)
            .where(
                Report.manager_id == manager_id,
                Report.acknowledged_at.is_(None),
                Report.created_at < created_before,
            )
            .order_by(Report.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_unanswered(self, manager_id: UUID, created_before: datetime) -> list[Report]:
        result = await self.db.execute(
            select(Report)
            .where(
                Report.manager_id == manager_id,
                Report.first_response_at.is_(None),
                Report.created_at < created_before,
            )
            .order_by(Report.created_at.asc())
        )
        return list(result.scalars().all())

    async def purge_case(self, report: Report) -> None:
        """Delete a report with its messages, attachments and reply tokens.

        All deletes share the caller's transaction, so committing removes
        all four kinds of row and rolling back removes none. Attachment files
        must be removed by the caller. A PURGED entry is appended to the
        audit trail, which is kept.
        """
        report_id = report.id
        protocol_code = report.protocol_code
        await self.db.execute(delete(Message).where(Message.report_id == report_id))
        await self.db.execute(delete(Attachment).where(Attachment.report_id == report_id))
        await self.db.execute(delete(ReplyToken).where(ReplyToken.report_id == report_id))
        await self.db.execute(delete(Report).where(Report.id == report_id))
        await AuditService(self.db).log_action(
            report_id=report_id,
            action=AuditAction.PURGED,
            actor_role=ActorRole.SYSTEM,
            meta={"protocol": protocol_code},
        )
