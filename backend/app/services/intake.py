"""Report intake: creation of anonymous and identified cases."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.crypto import PayloadCipher
from app.core.identity import Actor
from app.core.manager import ManagerIdentity, ManagerResolver
from app.core.tokens import generate_protocol_code, generate_reply_token
from app.exceptions import AuthenticationError, ValidationError
from app.models.audit import ActorRole, AuditAction
from app.models.report import Report, ReportStatus
from app.models.user import Category
from app.notifications.channels.base import NotificationMessage
from app.notifications.notifier import Notifier, resolve_recipients
from app.services.audit import AuditService
from app.services.store import CaseStore
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255


@dataclass
class ReportDraft:
    """Intake form contents."""

    title: str
    description: str
    category_id: int | None = None
    policy_accepted: bool = False


@dataclass
class AnonymousReceipt:
    """Returned once to the anonymous reporter. The token is never shown again."""

    protocol: str
    reply_token: str


@dataclass
class IdentifiedReceipt:
    report_id: UUID
    protocol: str


class IntakeService:
    """Creates cases and issues reply tokens."""

    def __init__(
        self,
        db: AsyncSession,
        cipher: PayloadCipher,
        resolver: ManagerResolver,
        notifier: Notifier,
        settings: Settings,
    ):
        self.db = db
        self.store = CaseStore(db)
        self.audit = AuditService(db)
        self.cipher = cipher
        self.resolver = resolver
        self.notifier = notifier
        self.settings = settings

    async def list_active_categories(self) -> list[Category]:
        return await self.store.list_active_categories()

    async def create_anonymous_report(self, draft: ReportDraft) -> AnonymousReceipt:
        """Create an anonymous case and return its protocol and reply token.

        Anonymous cases are acknowledged on creation. Only the token hash is
        stored; the raw token leaves this method exactly once.
        """
        title, description = self._validate(draft)
        manager = await self.resolver.resolve(self.db)
        category_id = await self._resolve_category(draft.category_id)

        report = await self._insert_report(
            title=title,
            description=description,
            category_id=category_id,
            manager=manager,
            reporter_user_id=None,
            acknowledge=True,
        )

        raw_token = generate_reply_token()
        await self.store.add_reply_token(
            report.id, raw_token, timedelta(days=self.settings.wb_reply_token_days)
        )
        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.CREATED,
            actor_role=ActorRole.REPORTER,
            meta=self._created_meta(report),
        )
        await self.db.commit()

        logger.info("Anonymous report %s created", report.protocol_code)
        await self._notify_new_report(report, manager)
        return AnonymousReceipt(protocol=report.protocol_code, reply_token=raw_token)

    async def create_identified_report(self, actor: Actor | None, draft: ReportDraft) -> IdentifiedReceipt:
        """Create a case tied to the caller's account. No reply token is issued."""
        if actor is None:
            raise AuthenticationError()
        title, description = self._validate(draft)
        manager = await self.resolver.resolve(self.db)
        category_id = await self._resolve_category(draft.category_id)

        report = await self._insert_report(
            title=title,
            description=description,
            category_id=category_id,
            manager=manager,
            reporter_user_id=actor.id,
            acknowledge=False,
        )
        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.CREATED,
            actor_role=ActorRole.REPORTER,
            actor_user_id=actor.id,
            meta=self._created_meta(report),
        )
        await self.db.commit()

        logger.info("Identified report %s created by user %s", report.protocol_code, actor.id)
        await self._notify_new_report(report, manager)
        return IdentifiedReceipt(report_id=report.id, protocol=report.protocol_code)

    def _validate(self, draft: ReportDraft) -> tuple[str, str]:
        if draft.policy_accepted is not True:
            raise ValidationError("The whistleblowing policy must be accepted")
        title = (draft.title or "").strip()
        description = (draft.description or "").strip()
        if not title or not description:
            raise ValidationError("Title and description are required")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
        return title, description

    async def _resolve_category(self, category_id: int | None) -> int | None:
        """Unknown or inactive categories are dropped, not rejected."""
        if category_id is None:
            return None
        category = await self.store.get_active_category(category_id)
        if category is None:
            logger.info("Ignoring unknown or inactive category %s on intake", category_id)
            return None
        return category.id

    async def _insert_report(
        self,
        title: str,
        description: str,
        category_id: int | None,
        manager: ManagerIdentity,
        reporter_user_id: UUID | None,
        acknowledge: bool,
    ) -> Report:
        """Insert the report, regenerating the protocol code on collision.

        The report is the first write of the transaction, so rolling back
        after a unique violation loses nothing.
        """
        encrypted = self.cipher.encrypt({"description": description})
        attempts = max(1, self.settings.wb_protocol_attempts)

        for attempt in range(1, attempts + 1):
            now = utcnow()
            code = generate_protocol_code(now)
            if await self.store.get_by_protocol(code) is not None:
                logger.warning("Protocol code collision on attempt %d, regenerating", attempt)
                continue

            report = Report(
                protocol_code=code,
                title=title,
                description_encrypted=encrypted,
                is_anonymous=reporter_user_id is None,
                reporter_user_id=reporter_user_id,
                manager_id=manager.id,
                category_id=category_id,
                status=ReportStatus.SUBMITTED,
                policy_accepted=True,
                policy_version=self.settings.wb_policy_version,
                created_at=now,
                acknowledged_at=now if acknowledge else None,
                last_update=now,
            )
            self.db.add(report)
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                if attempt == attempts:
                    raise
                logger.warning("Protocol code collision on insert, attempt %d", attempt)
                continue
            return report

        raise RuntimeError(f"Could not allocate a unique protocol code in {attempts} attempts")

    def _created_meta(self, report: Report) -> dict:
        return {
            "protocol": report.protocol_code,
            "category_id": report.category_id,
            "policy_version": report.policy_version,
        }

    async def _notify_new_report(self, report: Report, manager: ManagerIdentity) -> None:
        recipients = resolve_recipients(self.settings, manager)
        message = NotificationMessage(
            subject=f"[WB] New report {report.protocol_code}",
            body=(
                "A new whistleblowing report has been submitted.\n\n"
                f"Protocol: {report.protocol_code}\n"
                f"Type: {'anonymous' if report.is_anonymous else 'identified'}\n\n"
                "Sign in to the case desk to review it."
            ),
            category="new_report",
        )
        await self.notifier.send_best_effort(message, recipients)
