"""Unit tests for the scheduled deadline and retention jobs."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.models.attachment import Attachment
from app.models.audit import ActorRole, AuditAction, AuditEntry
from app.models.report import Message, ReplyToken, Report, SenderRole
from app.tasks.deadlines import run_deadline_reminders
from app.tasks.retention import run_retention_purge
from app.utils.timeutil import subtract_months, subtract_years
from tests.factories import AttachmentFactory, ClosedReportFactory, ReportFactory


pytestmark = pytest.mark.unit

NOW = datetime(2026, 6, 15, 3, 30, tzinfo=timezone.utc)


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestRetentionPurge:
    """Tests for the daily purge of long-closed cases."""

    @pytest.mark.asyncio
    async def test_purges_only_cases_past_cutoff(self, db, seed, storage, test_settings):
        cutoff = subtract_years(NOW, test_settings.wb_retention_years)
        expired = ClosedReportFactory(manager_id=seed.manager.id, closed_at=cutoff - timedelta(days=1))
        recent = ClosedReportFactory(manager_id=seed.manager.id, closed_at=cutoff + timedelta(days=1))
        ancient_open = ReportFactory(
            manager_id=seed.manager.id, created_at=datetime(2010, 1, 1, tzinfo=timezone.utc)
        )
        db.add_all([expired, recent, ancient_open])
        await db.commit()

        purged = await run_retention_purge(db, storage, test_settings, now=NOW)

        assert purged == [expired.protocol_code]
        remaining = (await db.execute(select(Report.id))).scalars().all()
        assert set(remaining) == {recent.id, ancient_open.id}

    @pytest.mark.asyncio
    async def test_removes_children_and_files(self, db, seed, storage, test_settings):
        """Messages, attachments, tokens and stored bytes all go with the case."""
        report = ClosedReportFactory(
            manager_id=seed.manager.id, closed_at=datetime(2015, 1, 1, tzinfo=timezone.utc)
        )
        db.add(report)
        await db.flush()

        attachment = AttachmentFactory(report_id=report.id)
        attachment.storage_key = f"{report.id}/{attachment.id}"
        await storage.upload_bytes(b"old evidence", attachment.storage_key)
        db.add_all([
            attachment,
            Message(report_id=report.id, sender_role=SenderRole.REPORTER, body_encrypted=b"x"),
            ReplyToken(
                report_id=report.id,
                token_hash=b"\x00" * 64,
                expires_at=datetime(2015, 6, 1, tzinfo=timezone.utc),
            ),
        ])
        await db.commit()

        await run_retention_purge(db, storage, test_settings, now=NOW)

        assert await count(db, Report) == 0
        assert await count(db, Message) == 0
        assert await count(db, Attachment) == 0
        assert await count(db, ReplyToken) == 0
        assert not await storage.exists(attachment.storage_key)

    @pytest.mark.asyncio
    async def test_audit_trail_survives(self, db, seed, storage, test_settings):
        report = ClosedReportFactory(
            manager_id=seed.manager.id, closed_at=datetime(2015, 1, 1, tzinfo=timezone.utc)
        )
        db.add(report)
        await db.commit()

        await run_retention_purge(db, storage, test_settings, now=NOW)

        entry = (
            await db.execute(select(AuditEntry).where(AuditEntry.report_id == report.id))
        ).scalar_one()
        assert entry.action == AuditAction.PURGED
        assert entry.actor_role == ActorRole.SYSTEM
        assert entry.meta == {"protocol": report.protocol_code}

    @pytest.mark.asyncio
    async def test_missing_file_does_not_block_purge(self, db, seed, storage, test_settings):
        report = ClosedReportFactory(
            manager_id=seed.manager.id, closed_at=datetime(2015, 1, 1, tzinfo=timezone.utc)
        )
        db.add(report)
        await db.flush()
        db.add(AttachmentFactory(report_id=report.id, storage_key=f"{report.id}/gone"))
        await db.commit()

        purged = await run_retention_purge(db, storage, test_settings, now=NOW)

        assert purged == [report.protocol_code]

    @pytest.mark.asyncio
    async def test_nothing_to_purge(self, db, seed, storage, test_settings):
        assert await run_retention_purge(db, storage, test_settings, now=NOW) == []


class TestDeadlineReminders:
    """Tests for the acknowledgement and response reminder rules."""

    @pytest.mark.asyncio
    async def test_acknowledgement_rule(self, db, seed, manager_resolver, notifier, test_settings):
        late = ReportFactory(manager_id=seed.manager.id, created_at=NOW - timedelta(days=8))
        fresh = ReportFactory(manager_id=seed.manager.id, created_at=NOW - timedelta(days=6))
        acknowledged = ReportFactory(
            manager_id=seed.manager.id,
            created_at=NOW - timedelta(days=30),
            acknowledged_at=NOW - timedelta(days=29),
            first_response_at=NOW - timedelta(days=29),
        )
        db.add_all([late, fresh, acknowledged])
        await db.commit()

        scan = await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        assert scan.need_ack == [late.protocol_code]

    @pytest.mark.asyncio
    async def test_response_rule(self, db, seed, manager_resolver, notifier, test_settings):
        cutoff = subtract_months(NOW, test_settings.wb_response_reminder_months)
        unanswered = ReportFactory(
            manager_id=seed.manager.id,
            created_at=cutoff - timedelta(days=1),
            acknowledged_at=cutoff,
        )
        answered = ReportFactory(
            manager_id=seed.manager.id,
            created_at=cutoff - timedelta(days=1),
            acknowledged_at=cutoff,
            first_response_at=cutoff + timedelta(days=1),
        )
        young = ReportFactory(
            manager_id=seed.manager.id,
            created_at=cutoff + timedelta(days=1),
            acknowledged_at=cutoff + timedelta(days=1),
        )
        db.add_all([unanswered, answered, young])
        await db.commit()

        scan = await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        assert scan.need_ack == []
        assert scan.need_response == [unanswered.protocol_code]

    @pytest.mark.asyncio
    async def test_case_can_match_both_rules(self, db, seed, manager_resolver, notifier, test_settings):
        report = ReportFactory(manager_id=seed.manager.id, created_at=NOW - timedelta(days=120))
        db.add(report)
        await db.commit()

        scan = await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        assert scan.to_dict() == {
            "need_ack": [report.protocol_code],
            "need_response": [report.protocol_code],
        }

    @pytest.mark.asyncio
    async def test_digest_email(self, db, seed, manager_resolver, notifier, mail_channel, test_settings):
        report = ReportFactory(manager_id=seed.manager.id, created_at=NOW - timedelta(days=8))
        db.add(report)
        await db.commit()

        await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        assert mail_channel.subjects() == ["[WB] Deadline reminder"]
        message, recipients = mail_channel.sent[0]
        assert recipients == ["wb-manager@example.com"]
        assert report.protocol_code in message.body
        assert report.title not in message.body

    @pytest.mark.asyncio
    async def test_no_email_when_nothing_due(
        self, db, seed, manager_resolver, notifier, mail_channel, test_settings
    ):
        scan = await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        assert scan.is_empty
        assert mail_channel.sent == []

    @pytest.mark.asyncio
    async def test_job_never_changes_cases(self, db, seed, manager_resolver, notifier, test_settings):
        report = ReportFactory(manager_id=seed.manager.id, created_at=NOW - timedelta(days=120))
        db.add(report)
        await db.commit()

        await run_deadline_reminders(db, manager_resolver, notifier, test_settings, now=NOW)

        stored = (
            await db.execute(select(Report.acknowledged_at, Report.last_update).where(Report.id == report.id))
        ).one()
        assert stored.acknowledged_at is None
        assert stored.last_update == report.last_update
