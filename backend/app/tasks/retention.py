"""Daily retention purge of long-closed cases.

Only cases whose closed_at is older than the retention age are touched.
Open cases are never purged, however old they are.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.storage import build_storage_adapter
from app.adapters.storage.base import StorageAdapter
from app.config import Settings, get_settings
from app.services.store import CaseStore
from app.utils.timeutil import subtract_years, utcnow

logger = logging.getLogger(__name__)


async def _remove_files(storage: StorageAdapter, keys: list[str]) -> None:
    for key in keys:
        try:
            await storage.delete(key)
        except (OSError, ValueError) as e:
            logger.warning("Retention could not delete file %s: %s", key, e)


async def run_retention_purge(
    db: AsyncSession,
    storage: StorageAdapter,
    settings: Settings,
    now: datetime | None = None,
) -> list[str]:
    """Purge every case closed before the retention cutoff.

    Each case is purged in its own transaction. A failure on one case is
    logged and rolled back; the rest of the run continues.

    Returns:
        Protocol codes of the purged cases.
    """
    now = now or utcnow()
    cutoff = subtract_years(now, settings.wb_retention_years)
    store = CaseStore(db)

    candidates = [(r.id, r.protocol_code) for r in await store.list_closed_before(cutoff)]
    purged: list[str] = []

    for report_id, protocol_code in candidates:
        try:
            report = await store.get_report(report_id)
            if report is None:
                continue
            attachments = await store.list_attachments(report.id, clean_only=False)
            await _remove_files(storage, [a.storage_key for a in attachments if a.storage_key])
            await store.purge_case(report)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Retention purge failed for %s", protocol_code)
            continue
        purged.append(protocol_code)
        logger.info("Retention purged report %s", protocol_code)

    logger.info("Retention run done: %d of %d case(s) purged", len(purged), len(candidates))
    return purged


async def _retention_purge_async() -> dict[str, Any]:
    from app.database import standalone_session

    settings = get_settings()
    storage = build_storage_adapter(settings)
    async with standalone_session() as db:
        purged = await run_retention_purge(db, storage, settings)
    return {"purged": purged}


@shared_task(
    bind=True,
    name="wb.retention_purge",
    queue="default",
)
def retention_purge(self) -> dict[str, Any]:
    """Celery entry point. Errors are logged; the next tick retries."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_retention_purge_async())
    except Exception:
        logger.exception("Retention purge run failed")
        return {"error": "retention purge run failed"}
    finally:
        loop.close()
