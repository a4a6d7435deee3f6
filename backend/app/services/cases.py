"""Manager-side case lifecycle: listing, detail, updates and audit trail."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.crypto import PayloadCipher
from app.core.identity import Actor
from app.exceptions import NotFoundError, ValidationError
from app.models.audit import ActorRole, AuditAction, AuditEntry
from app.models.report import Report, ReportStatus
from app.services.access import AccessResolver
from app.services.audit import AuditService
from app.services.store import CaseStore
from app.services.thread import ThreadMessage, ThreadService
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "category_id", "acknowledge")


@dataclass
class ReporterInfo:
    id: UUID
    full_name: str | None
    email: str | None


@dataclass
class CaseDetail:
    """Decrypted case as the manager sees it.

    reporter is None for every anonymous case.
    """

    report: Report
    description: str
    messages: list[ThreadMessage]
    reporter: ReporterInfo | None = None


@dataclass
class UpdateOutcome:
    updated: bool
    report: Report | None = None
    changes: dict[str, Any] = field(default_factory=dict)


class CaseManagerService:
    """Every method starts with the manager role gate."""

    def __init__(
        self,
        db: AsyncSession,
        cipher: PayloadCipher,
        access: AccessResolver,
        threads: ThreadService,
        settings: Settings,
    ):
        self.db = db
        self.store = CaseStore(db)
        self.audit = AuditService(db)
        self.cipher = cipher
        self.access = access
        self.threads = threads
        self.settings = settings

    async def list_cases(
        self,
        actor: Actor | None,
        status: ReportStatus | None = None,
        search: str | None = None,
    ) -> list[Report]:
        """Cases owned by the manager, most recently updated first."""
        manager = await self.access.manager(actor)
        return await self.store.list_manager_reports(
            manager.id,
            status=status,
            search=(search or "").strip() or None,
            limit=self.settings.wb_manager_page_size,
        )

    async def find_by_protocol(self, actor: Actor | None, protocol_code: str) -> Report:
        manager = await self.access.manager(actor)
        report = await self.store.get_by_protocol(protocol_code.strip())
        if report is None or report.manager_id != manager.id:
            raise NotFoundError("Report", protocol_code)
        return report

    async def get_case_detail(self, actor: Actor | None, report_id: UUID) -> CaseDetail:
        """Decrypt the case and record that the manager viewed it."""
        access = await self.access.for_manager(report_id, actor)
        report = access.report

        messages = await self.store.list_messages(report.id)
        reporter = None
        if not report.is_anonymous:
            user = await self.store.get_user(report.reporter_user_id)
            if user is not None:
                reporter = ReporterInfo(id=user.id, full_name=user.display_name, email=user.email)

        detail = CaseDetail(
            report=report,
            description=self.cipher.decrypt_field(report.description_encrypted, "description"),
            messages=[self.threads.decrypt_message(m) for m in messages],
            reporter=reporter,
        )

        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.VIEWED,
            actor_role=ActorRole.MANAGER,
            actor_user_id=actor.id if actor else None,
        )
        await self.db.commit()
        return detail

    async def update_case(
        self,
        actor: Actor | None,
        report_id: UUID,
        changes: dict[str, Any],
    ) -> UpdateOutcome:
        """Apply a partial update of status, category and acknowledgement.

        Unrecognised keys are ignored; with nothing left this is a no-op.
        Closing stamps closed_at and reopening clears it.
        """
        access = await self.access.for_manager(report_id, actor)
        report = access.report

        requested = {k: changes[k] for k in UPDATABLE_FIELDS if changes.get(k) is not None}
        if requested.get("acknowledge") is False:
            requested.pop("acknowledge")
        if not requested:
            return UpdateOutcome(updated=False, report=report)

        now = utcnow()

        category = None
        if "category_id" in requested:
            category = await self.store.get_active_category(requested["category_id"])
            if category is None:
                raise ValidationError(f"Unknown or inactive category {requested['category_id']}")

        if "status" in requested:
            try:
                status = ReportStatus(requested["status"])
            except ValueError:
                raise ValidationError(f"Unknown status {requested['status']!r}")
            requested["status"] = status.value
            if status.is_closed and not report.status.is_closed:
                report.closed_at = now
            elif not status.is_closed:
                report.closed_at = None
            report.status = status

        if category is not None:
            report.category_id = category.id

        if requested.get("acknowledge"):
            if report.acknowledged_at is None:
                report.acknowledged_at = now

        self.store.touch(report, now)
        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.REPORT_UPDATED,
            actor_role=ActorRole.MANAGER,
            actor_user_id=actor.id if actor else None,
            meta=requested,
        )
        await self.db.commit()

        logger.info("Report %s updated: %s", report.protocol_code, ", ".join(sorted(requested)))
        return UpdateOutcome(updated=True, report=report, changes=requested)

    async def get_audit_trail(self, actor: Actor | None, report_id: UUID) -> list[AuditEntry]:
        access = await self.access.for_manager(report_id, actor)
        return await self.audit.get_trail(access.report.id)
