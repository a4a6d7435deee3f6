"""Daily deadline reminders for unacknowledged and unanswered cases.

Two independent rules, both scoped to the resolved manager:
- not acknowledged and older than the acknowledgement window (7 days)
- no manager response and older than the response window (3 months)

The job only reports; it never changes a case.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.core.manager import ManagerResolver
from app.notifications.channels.base import NotificationMessage
from app.notifications.notifier import Notifier, create_notifier, resolve_recipients
from app.services.store import CaseStore
from app.utils.timeutil import subtract_months, utcnow

logger = logging.getLogger(__name__)


@dataclass
class DeadlineScan:
    """Protocol codes found by each rule. A case may appear in both."""

    need_ack: list[str] = field(default_factory=list)
    need_response: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.need_ack and not self.need_response

    def to_dict(self) -> dict[str, Any]:
        return {"need_ack": self.need_ack, "need_response": self.need_response}


async def run_deadline_reminders(
    db: AsyncSession,
    resolver: ManagerResolver,
    notifier: Notifier,
    settings: Settings,
    now: datetime | None = None,
) -> DeadlineScan:
    """Evaluate both reminder rules and send a best-effort digest."""
    now = now or utcnow()
    store = CaseStore(db)
    manager = await resolver.resolve(db)

    ack_cutoff = now - timedelta(days=settings.wb_ack_reminder_days)
    response_cutoff = subtract_months(now, settings.wb_response_reminder_months)

    scan = DeadlineScan(
        need_ack=[r.protocol_code for r in await store.list_unacknowledged(manager.id, ack_cutoff)],
        need_response=[
            r.protocol_code for r in await store.list_unanswered(manager.id, response_cutoff)
        ],
    )

    if scan.need_ack:
        logger.warning(
            "Reports awaiting acknowledgement for more than %d days: %s",
            settings.wb_ack_reminder_days,
            ", ".join(scan.need_ack),
        )
    if scan.need_response:
        logger.warning(
            "Reports without a response for more than %d months: %s",
            settings.wb_response_reminder_months,
            ", ".join(scan.need_response),
        )

    if not scan.is_empty:
        lines = ["Whistleblowing deadlines need attention.", ""]
        if scan.need_ack:
            lines.append(f"Not acknowledged after {settings.wb_ack_reminder_days} days:")
            lines.extend(f"  - {code}" for code in scan.need_ack)
            lines.append("")
        if scan.need_response:
            lines.append(f"No response after {settings.wb_response_reminder_months} months:")
            lines.extend(f"  - {code}" for code in scan.need_response)
        await notifier.send_best_effort(
            NotificationMessage(
                subject="[WB] Deadline reminder",
                body="\n".join(lines),
                category="deadline",
            ),
            resolve_recipients(settings, manager),
        )

    logger.info(
        "Deadline scan done: %d awaiting ack, %d awaiting response",
        len(scan.need_ack),
        len(scan.need_response),
    )
    return scan


async def _deadline_reminders_async() -> dict[str, Any]:
    from app.database import standalone_session

    settings = get_settings()
    resolver = ManagerResolver(
        role=settings.wb_manager_role,
        ttl_seconds=settings.wb_manager_cache_ttl_seconds,
    )
    async with standalone_session() as db:
        scan = await run_deadline_reminders(db, resolver, create_notifier(settings), settings)
    return scan.to_dict()


@shared_task(
    bind=True,
    name="wb.deadline_reminders",
    queue="default",
)
def deadline_reminders(self) -> dict[str, Any]:
    """Celery entry point. Errors are logged; the next tick retries."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_deadline_reminders_async())
    except Exception:
        logger.exception("Deadline reminder run failed")
        return {"error": "deadline reminder run failed"}
    finally:
        loop.close()
