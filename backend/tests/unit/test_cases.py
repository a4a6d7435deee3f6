"""Unit tests for the manager case lifecycle."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.models.audit import ActorRole, AuditAction, AuditEntry
from app.models.report import Report, ReportStatus
from app.services.intake import ReportDraft
from tests.factories import ManagerUserFactory, ReportFactory


pytestmark = pytest.mark.unit


def draft(**overrides) -> ReportDraft:
    values = {
        "title": "Overtime not paid",
        "description": "Night shifts are logged as day shifts.",
        "policy_accepted": True,
    }
    values.update(overrides)
    return ReportDraft(**values)


class TestListCases:
    """Tests for the manager case list."""

    @pytest.mark.asyncio
    async def test_most_recent_first(self, db, seed, case_service):
        """Cases are ordered by last update, newest first."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        older = ReportFactory(manager_id=seed.manager.id, last_update=base)
        newer = ReportFactory(manager_id=seed.manager.id, last_update=base + timedelta(days=1))
        db.add_all([older, newer])
        await db.commit()

        cases = await case_service.list_cases(seed.manager_actor)

        assert [c.id for c in cases] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_status_filter(self, db, seed, case_service):
        db.add_all([
            ReportFactory(manager_id=seed.manager.id, status=ReportStatus.TRIAGE),
            ReportFactory(manager_id=seed.manager.id, status=ReportStatus.SUBMITTED),
        ])
        await db.commit()

        cases = await case_service.list_cases(seed.manager_actor, status=ReportStatus.TRIAGE)

        assert [c.status for c in cases] == [ReportStatus.TRIAGE]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("term", ["forklift", "FORKLIFT", "WB-2026-777777", "  forklift  "])
    async def test_search_matches_title_or_protocol(self, db, seed, case_service, term):
        db.add_all([
            ReportFactory(
                manager_id=seed.manager.id,
                protocol_code="WB-2026-777777",
                title="Forklift inspections skipped",
            ),
            ReportFactory(manager_id=seed.manager.id, title="Unrelated"),
        ])
        await db.commit()

        cases = await case_service.list_cases(seed.manager_actor, search=term)

        assert [c.protocol_code for c in cases] == ["WB-2026-777777"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "term, expected",
        [("%", "Bonus raised 100% overnight"), ("_", "cost_center misuse"), ("\\", "C:\\shared leak")],
    )
    async def test_search_wildcards_match_literally(self, db, seed, case_service, term, expected):
        db.add_all([
            ReportFactory(manager_id=seed.manager.id, title="Bonus raised 100% overnight"),
            ReportFactory(manager_id=seed.manager.id, title="cost_center misuse"),
            ReportFactory(manager_id=seed.manager.id, title="C:\\shared leak"),
            ReportFactory(manager_id=seed.manager.id, title="Plain title"),
        ])
        await db.commit()

        cases = await case_service.list_cases(seed.manager_actor, search=term)

        assert [c.title for c in cases] == [expected]

    @pytest.mark.asyncio
    async def test_blank_search_lists_everything(self, db, seed, case_service):
        db.add_all([ReportFactory(manager_id=seed.manager.id) for _ in range(3)])
        await db.commit()

        assert len(await case_service.list_cases(seed.manager_actor, search="   ")) == 3

    @pytest.mark.asyncio
    async def test_other_managers_cases_hidden(self, db, seed, case_service):
        """Only cases assigned to the resolved manager are listed."""
        other = ManagerUserFactory(created_at=datetime(2099, 1, 1, tzinfo=timezone.utc))
        db.add(other)
        await db.flush()
        db.add(ReportFactory(manager_id=other.id))
        await db.commit()

        assert await case_service.list_cases(seed.manager_actor) == []

    @pytest.mark.asyncio
    async def test_non_manager_forbidden(self, seed, case_service):
        with pytest.raises(AuthorizationError):
            await case_service.list_cases(seed.reporter_actor)


class TestFindByProtocol:
    @pytest.mark.asyncio
    async def test_found(self, db, seed, case_service):
        report = ReportFactory(manager_id=seed.manager.id, protocol_code="WB-2026-123456")
        db.add(report)
        await db.commit()

        found = await case_service.find_by_protocol(seed.manager_actor, " WB-2026-123456 ")

        assert found.id == report.id

    @pytest.mark.asyncio
    async def test_unknown(self, seed, case_service):
        with pytest.raises(NotFoundError):
            await case_service.find_by_protocol(seed.manager_actor, "WB-2026-000404")


class TestCaseDetail:
    """Tests for the decrypted manager view."""

    @pytest.mark.asyncio
    async def test_anonymous_detail_has_no_reporter(self, seed, intake_service, thread_service, case_service):
        receipt = await intake_service.create_anonymous_report(draft())
        await thread_service.post_anonymous_message(receipt.protocol, receipt.reply_token, "More info")
        report_id = (await case_service.find_by_protocol(seed.manager_actor, receipt.protocol)).id

        detail = await case_service.get_case_detail(seed.manager_actor, report_id)

        assert detail.description == "Night shifts are logged as day shifts."
        assert detail.reporter is None
        assert [m.body for m in detail.messages] == ["More info"]

    @pytest.mark.asyncio
    async def test_identified_detail_includes_reporter(self, seed, intake_service, case_service):
        receipt = await intake_service.create_identified_report(seed.reporter_actor, draft())

        detail = await case_service.get_case_detail(seed.manager_actor, receipt.report_id)

        assert detail.reporter is not None
        assert detail.reporter.email == "reporter@example.com"
        assert detail.reporter.full_name == "Rita Reporter"

    @pytest.mark.asyncio
    async def test_viewing_is_audited(self, db, seed, intake_service, case_service):
        receipt = await intake_service.create_identified_report(seed.reporter_actor, draft())

        await case_service.get_case_detail(seed.manager_actor, receipt.report_id)

        entry = (
            await db.execute(select(AuditEntry).where(AuditEntry.action == AuditAction.VIEWED))
        ).scalar_one()
        assert entry.actor_role == ActorRole.MANAGER
        assert entry.actor_user_id == seed.manager.id

    @pytest.mark.asyncio
    async def test_reporter_forbidden(self, seed, intake_service, case_service):
        receipt = await intake_service.create_identified_report(seed.reporter_actor, draft())

        with pytest.raises(AuthorizationError):
            await case_service.get_case_detail(seed.reporter_actor, receipt.report_id)


class TestUpdateCase:
    """Tests for status, category and acknowledgement updates."""

    async def _report(self, db, seed, **kwargs) -> Report:
        report = ReportFactory(manager_id=seed.manager.id, **kwargs)
        db.add(report)
        await db.commit()
        return report

    @pytest.mark.asyncio
    async def test_status_change(self, db, seed, case_service):
        report = await self._report(db, seed)
        before = report.last_update

        outcome = await case_service.update_case(
            seed.manager_actor, report.id, {"status": "in_review"}
        )

        assert outcome.updated is True
        assert outcome.report.status == ReportStatus.IN_REVIEW
        assert outcome.report.closed_at is None
        assert outcome.report.last_update >= before

    @pytest.mark.asyncio
    async def test_close_then_reopen(self, db, seed, case_service):
        report = await self._report(db, seed)

        closed = await case_service.update_case(
            seed.manager_actor, report.id, {"status": "closed_substantiated"}
        )
        assert closed.report.closed_at is not None

        reopened = await case_service.update_case(
            seed.manager_actor, report.id, {"status": "need_info"}
        )
        assert reopened.report.closed_at is None

    @pytest.mark.asyncio
    async def test_closing_twice_keeps_first_closed_at(self, db, seed, case_service):
        report = await self._report(db, seed)

        first = await case_service.update_case(
            seed.manager_actor, report.id, {"status": "closed_other"}
        )
        closed_at = first.report.closed_at
        second = await case_service.update_case(
            seed.manager_actor, report.id, {"status": "closed_unsubstantiated"}
        )

        assert second.report.closed_at == closed_at

    @pytest.mark.asyncio
    async def test_unknown_status(self, db, seed, case_service):
        report = await self._report(db, seed)

        with pytest.raises(ValidationError):
            await case_service.update_case(seed.manager_actor, report.id, {"status": "archived"})

    @pytest.mark.asyncio
    async def test_category_change(self, db, seed, case_service):
        report = await self._report(db, seed)

        outcome = await case_service.update_case(
            seed.manager_actor, report.id, {"category_id": seed.safety.id}
        )

        assert outcome.report.category_id == seed.safety.id

    @pytest.mark.asyncio
    async def test_inactive_category_rejected_without_changes(self, db, seed, case_service):
        report = await self._report(db, seed)

        with pytest.raises(ValidationError):
            await case_service.update_case(
                seed.manager_actor,
                report.id,
                {"status": "triage", "category_id": seed.retired.id},
            )

        assert report.status == ReportStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_acknowledge_is_idempotent(self, db, seed, case_service):
        report = await self._report(db, seed)

        first = await case_service.update_case(seed.manager_actor, report.id, {"acknowledge": True})
        stamped = first.report.acknowledged_at
        assert stamped is not None

        await case_service.update_case(seed.manager_actor, report.id, {"acknowledge": True})
        assert report.acknowledged_at == stamped

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [{}, {"acknowledge": False}, {"status": None}, {"title": "ignored"}],
    )
    async def test_empty_change_set_is_noop(self, db, seed, case_service, changes):
        report = await self._report(db, seed)

        outcome = await case_service.update_case(seed.manager_actor, report.id, changes)

        assert outcome.updated is False
        entries = (await db.execute(select(AuditEntry))).scalars().all()
        assert entries == []

    @pytest.mark.asyncio
    async def test_update_is_audited(self, db, seed, case_service):
        report = await self._report(db, seed)

        await case_service.update_case(
            seed.manager_actor, report.id, {"status": "triage", "acknowledge": True}
        )

        entry = (await db.execute(select(AuditEntry))).scalar_one()
        assert entry.action == AuditAction.REPORT_UPDATED
        assert entry.meta == {"status": "triage", "acknowledge": True}

    @pytest.mark.asyncio
    async def test_unknown_report(self, seed, case_service):
        with pytest.raises(NotFoundError):
            await case_service.update_case(seed.manager_actor, uuid4(), {"status": "triage"})


class TestAuditTrail:
    @pytest.mark.asyncio
    async def test_trail_in_order(self, seed, intake_service, thread_service, case_service):
        receipt = await intake_service.create_identified_report(seed.reporter_actor, draft())
        await thread_service.post_manager_message(seed.manager_actor, receipt.report_id, "Received")
        await case_service.update_case(seed.manager_actor, receipt.report_id, {"status": "triage"})

        trail = await case_service.get_audit_trail(seed.manager_actor, receipt.report_id)

        assert [e.action for e in trail] == [
            AuditAction.CREATED,
            AuditAction.MESSAGE_SENT,
            AuditAction.REPORT_UPDATED,
        ]

    @pytest.mark.asyncio
    async def test_reporter_forbidden(self, seed, intake_service, case_service):
        receipt = await intake_service.create_identified_report(seed.reporter_actor, draft())

        with pytest.raises(AuthorizationError):
            await case_service.get_audit_trail(seed.reporter_actor, receipt.report_id)
