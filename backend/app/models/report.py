"""Whistleblowing report, thread message and reply token models."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.compat import UTCDateTime, UUIDType
from app.utils.timeutil import utcnow


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ReportStatus(str, enum.Enum):
    """Case lifecycle status. Any value may be set by the manager at any time."""

    SUBMITTED = "submitted"
    TRIAGE = "triage"
    IN_REVIEW = "in_review"
    NEED_INFO = "need_info"
    CLOSED_SUBSTANTIATED = "closed_substantiated"
    CLOSED_UNSUBSTANTIATED = "closed_unsubstantiated"
    CLOSED_OTHER = "closed_other"

    @property
    def is_closed(self) -> bool:
        return self.value.startswith("closed_")


class SenderRole(str, enum.Enum):
    """Author of a thread message."""

    REPORTER = "reporter"
    MANAGER = "manager"


class Report(Base):
    """A whistleblowing case.

    The description is stored only as an encrypted blob. For anonymous
    reports reporter_user_id is always null.
    """

    __tablename__ = "wb_reports"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    protocol_code: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description_encrypted: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reporter_user_id: Mapped[UUID | None] = mapped_column(
        UUIDType(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    manager_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("users.id"), nullable=False, index=True
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("wb_categories.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus, name="wb_report_status", values_callable=_enum_values),
        nullable=False,
        default=ReportStatus.SUBMITTED,
        index=True,
    )
    policy_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    policy_version: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    first_response_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True, index=True)
    last_update: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Report {self.protocol_code}: {self.status.value}>"


class Message(Base):
    """Append-only thread message with an encrypted body."""

    __tablename__ = "wb_messages"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    report_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("wb_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_role: Mapped[SenderRole] = mapped_column(
        Enum(SenderRole, name="wb_sender_role", values_callable=_enum_values),
        nullable=False,
    )
    body_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Message {self.id} by {self.sender_role.value}>"


class ReplyToken(Base):
    """Hashed reply token granting anonymous access to one report."""

    __tablename__ = "wb_reply_tokens"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    report_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("wb_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[bytes] = mapped_column(LargeBinary(64), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    def __repr__(self) -> str:
        return f"<ReplyToken for {self.report_id}>"
