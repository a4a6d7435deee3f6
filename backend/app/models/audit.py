"""Audit trail model for whistleblowing cases."""

import enum
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.compat import JSONBType, UTCDateTime, UUIDType
from app.utils.timeutil import utcnow


class ActorRole(str, enum.Enum):
    """Who performed an audited action."""

    REPORTER = "reporter"
    MANAGER = "manager"
    SYSTEM = "system"


class AuditAction:
    """Well-known audit action names."""

    CREATED = "CREATED"
    MESSAGE_SENT = "MESSAGE_SENT"
    VIEWED = "VIEWED"
    REPORT_UPDATED = "REPORT_UPDATED"
    ATTACHMENT_UPLOADED = "ATTACHMENT_UPLOADED"
    ATTACHMENT_RESCANNED = "ATTACHMENT_RESCANNED"
    ATTACHMENT_DELETED = "ATTACHMENT_DELETED"
    PURGED = "PURGED"


class AuditEntry(Base):
    """Append-only audit entry.

    report_id deliberately has no foreign key: entries outlive a retention
    purge of the report they describe.
    """

    __tablename__ = "wb_audit"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    report_id: Mapped[UUID] = mapped_column(UUIDType(), nullable=False, index=True)
    actor_role: Mapped[ActorRole] = mapped_column(
        Enum(
            ActorRole,
            name="wb_actor_role",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    actor_user_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSONBType(), default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} on {self.report_id}>"
