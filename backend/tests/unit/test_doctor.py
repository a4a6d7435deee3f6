"""Unit tests for the deployment self-check."""

import pytest
from sqlalchemy import func, select

from app.doctor import CheckResult, check_antivirus, check_encryption_key, run_checks
from app.models.report import Report


pytestmark = pytest.mark.unit


class TestCheckResult:
    def test_render(self):
        assert CheckResult("database", True, "connection ok").render() == "[OK  ] database: connection ok"
        assert CheckResult("manager", False, "none").render() == "[FAIL] manager: none"
        assert CheckResult("antivirus", False, "disabled", hard=False).render() == "[WARN] antivirus: disabled"


class TestIndividualChecks:
    def test_good_key(self, test_settings):
        result, cipher = check_encryption_key(test_settings)

        assert result.ok
        assert cipher is not None

    @pytest.mark.parametrize("key", ["", "c2hvcnQ=", "%%%"])
    def test_bad_key(self, test_settings, key):
        result, cipher = check_encryption_key(test_settings.model_copy(update={"wb_aes_key": key}))

        assert not result.ok
        assert cipher is None

    def test_disabled_antivirus_is_a_warning(self, test_settings):
        result = check_antivirus(test_settings)

        assert not result.ok
        assert not result.hard

    def test_local_antivirus(self, test_settings):
        result = check_antivirus(test_settings.model_copy(update={"wb_av_mode": "local"}))

        assert result.ok


class TestRunChecks:
    """Full runs against the test database."""

    @pytest.mark.asyncio
    async def test_all_checks_pass(self, engine, seed, test_settings):
        results = await run_checks(test_settings)

        assert [r.name for r in results] == [
            "encryption key",
            "database",
            "manager",
            "report insert",
            "antivirus",
        ]
        assert all(r.ok for r in results if r.hard)

    @pytest.mark.asyncio
    async def test_insert_check_leaves_no_rows(self, db, engine, seed, test_settings):
        await run_checks(test_settings)

        assert (await db.execute(select(func.count()).select_from(Report))).scalar_one() == 0

    @pytest.mark.asyncio
    async def test_stops_without_manager(self, engine, test_settings):
        results = await run_checks(test_settings, skip_insert=True)

        assert results[-1].name == "manager"
        assert not results[-1].ok

    @pytest.mark.asyncio
    async def test_stops_on_bad_key(self, test_settings):
        results = await run_checks(test_settings.model_copy(update={"wb_aes_key": ""}))

        assert len(results) == 1
        assert results[0].name == "encryption key"
