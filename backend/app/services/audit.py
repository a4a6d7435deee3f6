"""Audit trail service for whistleblowing cases.

Entries are append-only. Nothing in this package updates or deletes them,
including the retention purge.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import ActorRole, AuditEntry

logger = logging.getLogger(__name__)


class AuditService:
    """Service for creating and querying audit entries."""

    def __init__(self, db: AsyncSession):
        """Initialize audit service with database session."""
        self.db = db

    async def log_action(
        self,
        report_id: UUID,
        action: str,
        actor_role: ActorRole,
        actor_user_id: UUID | None = None,
        meta: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append an audit entry to the current transaction.

        Args:
            report_id: Case the action applies to
            action: Action name such as CREATED or VIEWED
            actor_role: reporter, manager or system
            actor_user_id: Acting user, never set for anonymous reporters
            meta: Structured details; must not contain decrypted content

        Returns:
            Created AuditEntry
        """
        entry = AuditEntry(
            report_id=report_id,
            action=action,
            actor_role=actor_role,
            actor_user_id=actor_user_id,
            meta=meta or {},
        )

        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Audit: %s by %s on report/%s",
            action,
            actor_role.value,
            report_id,
        )

        return entry

    async def get_trail(self, report_id: UUID) -> list[AuditEntry]:
        """All entries for a case, oldest first."""
        result = await self.db.execute(
            select(AuditEntry)
            .where(AuditEntry.report_id == report_id)
            .order_by(AuditEntry.created_at.asc())
        )
        return list(result.scalars().all())
