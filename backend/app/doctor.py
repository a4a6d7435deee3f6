"""Deployment self-check for WB Desk.

Usage::

    python -m app.doctor [--skip-insert]

Prints one line per check and exits non-zero on the first hard failure.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.core.crypto import PayloadCipher
from app.core.tokens import generate_protocol_code
from app.exceptions import ConfigurationError, DecryptionError
from app.models.report import Report, ReportStatus
from app.models.user import User
from app.scanning import create_scanner
from app.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str
    hard: bool = True

    def render(self) -> str:
        if self.ok:
            mark = "OK"
        else:
            mark = "FAIL" if self.hard else "WARN"
        return f"[{mark:4}] {self.name}: {self.detail}"


def check_encryption_key(settings: Settings) -> tuple[CheckResult, PayloadCipher | None]:
    try:
        cipher = PayloadCipher.from_base64(settings.wb_aes_key)
        probe = {"description": "doctor"}
        if cipher.decrypt(cipher.encrypt(probe)) != probe:
            return CheckResult("encryption key", False, "round trip mismatch"), None
    except (ConfigurationError, DecryptionError) as e:
        return CheckResult("encryption key", False, e.message), None
    return CheckResult("encryption key", True, "32-byte key, round trip verified"), cipher


async def check_database(db: AsyncSession) -> CheckResult:
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return CheckResult("database", False, f"unreachable: {e.__class__.__name__}")
    return CheckResult("database", True, "connection ok")


async def check_manager(db: AsyncSession, settings: Settings) -> tuple[CheckResult, User | None]:
    result = await db.execute(
        select(User)
        .where(User.role == settings.wb_manager_role, User.is_active.is_(True))
        .order_by(User.created_at, User.id)
    )
    managers = list(result.scalars().all())
    if not managers:
        return (
            CheckResult("manager", False, f"no active user with role {settings.wb_manager_role}"),
            None,
        )
    detail = f"{managers[0].email} ({managers[0].id})"
    if len(managers) > 1:
        detail += f", {len(managers) - 1} more; the oldest is used"
    return CheckResult("manager", True, detail), managers[0]


async def check_report_insert(db: AsyncSession, cipher: PayloadCipher, manager: User) -> CheckResult:
    """Insert a throwaway report and roll it back."""
    now = utcnow()
    report = Report(
        protocol_code=generate_protocol_code(now),
        title="WB Doctor Test",
        description_encrypted=cipher.encrypt({"description": "doctor"}),
        is_anonymous=True,
        manager_id=manager.id,
        status=ReportStatus.SUBMITTED,
        policy_accepted=True,
        created_at=now,
        acknowledged_at=now,
        last_update=now,
    )
    try:
        db.add(report)
        await db.flush()
    except SQLAlchemyError as e:
        return CheckResult("report insert", False, f"failed: {e.__class__.__name__}")
    finally:
        await db.rollback()
    return CheckResult("report insert", True, "insert and rollback ok")


def check_antivirus(settings: Settings) -> CheckResult:
    scanner = create_scanner(settings)
    if scanner.mode == "disabled":
        return CheckResult(
            "antivirus", False, "disabled, attachments stay pending", hard=False
        )
    return CheckResult("antivirus", True, f"mode {scanner.mode} ({settings.clamscan_bin})")


async def run_checks(settings: Settings, skip_insert: bool = False) -> list[CheckResult]:
    """Run every check in order, stopping at the first hard failure."""
    from app.database import standalone_session

    results: list[CheckResult] = []

    key_result, cipher = check_encryption_key(settings)
    results.append(key_result)
    if not key_result.ok:
        return results

    async with standalone_session(settings.database_url) as db:
        db_result = await check_database(db)
        results.append(db_result)
        if not db_result.ok:
            return results

        manager_result, manager = await check_manager(db, settings)
        results.append(manager_result)
        if not manager_result.ok:
            return results

        if not skip_insert:
            results.append(await check_report_insert(db, cipher, manager))
            if not results[-1].ok:
                return results

    results.append(check_antivirus(settings))
    return results


def main() -> None:
    parser = argparse.ArgumentParser(description="WB Desk deployment self-check")
    parser.add_argument(
        "--skip-insert",
        action="store_true",
        help="Do not try a rolled-back report insert",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("=== WB Doctor ===")
    results = asyncio.run(run_checks(settings, skip_insert=args.skip_insert))
    for result in results:
        print(result.render())

    if any(not r.ok and r.hard for r in results):
        print("Doctor found a blocking problem.", file=sys.stderr)
        sys.exit(1)
    print("All blocking checks passed.")


if __name__ == "__main__":
    main()
