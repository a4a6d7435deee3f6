"""Attachment intake, antivirus gating and download."""

import hashlib
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.storage.base import StorageAdapter
from app.config import Settings
from app.core.identity import Actor
from app.core.tokens import sanitize_filename
from app.exceptions import AuthorizationError, NotFoundError, StorageError, ValidationError
from app.models.attachment import Attachment, AvStatus
from app.models.audit import ActorRole, AuditAction
from app.scanning.antivirus import AntivirusScanner, ScanVerdict
from app.services.access import AccessResolver, CaseAccess
from app.services.audit import AuditService
from app.services.store import CaseStore
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class AttachmentDownload:
    """Metadata plus a byte stream for one stored attachment."""

    attachment: Attachment
    stream: AsyncIterator[bytes]

    @property
    def filename(self) -> str:
        return self.attachment.filename

    @property
    def media_type(self) -> str:
        return self.attachment.mime_type or DEFAULT_MIME_TYPE


def storage_key_for(report_id: UUID, attachment_id: UUID) -> str:
    """Storage keys depend only on ids, never on the uploaded filename."""
    return f"{report_id}/{attachment_id}"


class AttachmentService:
    """Uploads, scans and serves report attachments.

    Reporters only ever see clean attachments. The manager sees everything
    and can rescan or delete.
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: StorageAdapter,
        scanner: AntivirusScanner,
        access: AccessResolver,
        settings: Settings,
    ):
        self.db = db
        self.store = CaseStore(db)
        self.audit = AuditService(db)
        self.storage = storage
        self.scanner = scanner
        self.access = access
        self.settings = settings

    async def list_attachments(self, access: CaseAccess) -> list[Attachment]:
        return await self.store.list_attachments(access.report.id, clean_only=not access.is_manager)

    async def upload(
        self,
        access: CaseAccess,
        filename: str | None,
        content_type: str | None,
        data: bytes,
    ) -> Attachment:
        """Store an attachment and scan it before returning.

        A pending row is flushed first so the storage key can use its id.
        If the bytes cannot be written the row is rolled back and the whole
        upload fails.
        """
        if not data:
            raise ValidationError("File is empty")
        if len(data) > self.settings.wb_max_attachment_bytes:
            raise ValidationError(
                f"File exceeds the {self.settings.wb_max_attachment_bytes} byte limit"
            )

        report = access.report
        attachment = Attachment(
            report_id=report.id,
            filename=sanitize_filename(filename, self.settings.wb_filename_max_length),
            mime_type=(content_type or DEFAULT_MIME_TYPE)[:255],
            size_bytes=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            av_status=AvStatus.PENDING,
            uploaded_by_role=access.actor_role.value,
        )
        self.db.add(attachment)
        await self.db.flush()

        key = storage_key_for(report.id, attachment.id)
        try:
            await self.storage.upload_bytes(data, key)
        except (OSError, ValueError) as e:
            logger.error("Failed to store attachment for report %s: %s", report.protocol_code, e)
            await self.db.rollback()
            raise StorageError() from e

        attachment.storage_key = key
        self.store.touch(report)
        await self.audit.log_action(
            report_id=report.id,
            action=AuditAction.ATTACHMENT_UPLOADED,
            actor_role=access.actor_role,
            actor_user_id=access.actor_user_id,
            meta={
                "attachment_id": str(attachment.id),
                "sha256": attachment.sha256,
                "size_bytes": attachment.size_bytes,
            },
        )
        await self.db.commit()

        await self._apply_scan(attachment)
        await self.db.commit()
        return attachment

    async def open_download(self, access: CaseAccess, attachment_id: UUID) -> AttachmentDownload:
        """Open an attachment for streaming.

        Raises:
            NotFoundError: Unknown attachment, wrong case or missing bytes.
            AuthorizationError: Reporter asked for a file that is not clean.
        """
        attachment = await self.store.get_attachment(attachment_id)
        if attachment is None or attachment.report_id != access.report.id:
            raise NotFoundError("Attachment")
        if not access.is_manager and not attachment.is_clean:
            raise AuthorizationError("Attachment is not available")
        return await self._open(attachment)

    async def open_manager_download(self, actor: Actor | None, attachment_id: UUID) -> AttachmentDownload:
        attachment = await self._managed_attachment(actor, attachment_id)
        return await self._open(attachment)

    async def rescan(self, actor: Actor | None, attachment_id: UUID) -> Attachment:
        """Re-run the scanner against the stored bytes."""
        attachment = await self._managed_attachment(actor, attachment_id)
        if not attachment.storage_key or not await self.storage.exists(attachment.storage_key):
            raise NotFoundError("Attachment file")

        verdict = await self._apply_scan(attachment)
        await self.audit.log_action(
            report_id=attachment.report_id,
            action=AuditAction.ATTACHMENT_RESCANNED,
            actor_role=ActorRole.MANAGER,
            actor_user_id=actor.id if actor else None,
            meta={"attachment_id": str(attachment.id), "av_status": verdict.status.value},
        )
        await self.db.commit()
        return attachment

    async def delete(self, actor: Actor | None, attachment_id: UUID) -> None:
        """Remove the bytes (best effort) and then the row."""
        attachment = await self._managed_attachment(actor, attachment_id)
        if attachment.storage_key:
            try:
                removed = await self.storage.delete(attachment.storage_key)
                if not removed:
                    logger.info("Attachment %s had no stored bytes", attachment.id)
            except (OSError, ValueError) as e:
                logger.warning("Failed to delete bytes for attachment %s: %s", attachment.id, e)

        report_id = attachment.report_id
        await self.db.delete(attachment)
        await self.audit.log_action(
            report_id=report_id,
            action=AuditAction.ATTACHMENT_DELETED,
            actor_role=ActorRole.MANAGER,
            actor_user_id=actor.id if actor else None,
            meta={"attachment_id": str(attachment_id)},
        )
        await self.db.commit()

    async def av_selftest(self, actor: Actor | None) -> dict[str, Any]:
        """Scan a harmless temporary file to check the scanner wiring."""
        await self.access.manager(actor)
        fd, path = tempfile.mkstemp(prefix="wb-av-selftest-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(b"wb-desk antivirus self-test\n")
            verdict = await self._scan(path)
        finally:
            os.unlink(path)
        return {
            "mode": self.scanner.mode,
            "status": verdict.status.value,
            "exit_code": verdict.exit_code,
            "detail": verdict.detail,
        }

    async def _managed_attachment(self, actor: Actor | None, attachment_id: UUID) -> Attachment:
        manager = await self.access.manager(actor)
        attachment = await self.store.get_attachment(attachment_id)
        if attachment is None:
            raise NotFoundError("Attachment")
        report = await self.store.get_managed_report(attachment.report_id, manager.id)
        if report is None:
            raise NotFoundError("Attachment")
        return attachment

    async def _open(self, attachment: Attachment) -> AttachmentDownload:
        if not attachment.storage_key or not await self.storage.exists(attachment.storage_key):
            raise NotFoundError("Attachment file")
        return AttachmentDownload(
            attachment=attachment,
            stream=self.storage.stream_download(attachment.storage_key),
        )

    async def _scan(self, path: str) -> ScanVerdict:
        try:
            return await self.scanner.scan(path)
        except Exception as e:
            logger.warning("Scanner %s failed on %s: %s", self.scanner.mode, path, e)
            return ScanVerdict(status=AvStatus.PENDING, target=path, detail=str(e))

    async def _apply_scan(self, attachment: Attachment) -> ScanVerdict:
        path = self.storage.get_file_path(attachment.storage_key or "")
        verdict = await self._scan(path)
        attachment.av_status = verdict.status
        attachment.scanned_at = utcnow()
        logger.info("Attachment %s scanned: %s", attachment.id, verdict.status.value)
        return verdict
