"""Attachment model for report uploads."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.compat import UTCDateTime, UUIDType
from app.utils.timeutil import utcnow


class AvStatus(str, enum.Enum):
    """Antivirus verdict recorded on an attachment."""

    PENDING = "pending"
    CLEAN = "clean"
    QUARANTINED = "quarantined"


class Attachment(Base):
    """File attached to a report.

    storage_key is always "<report_id>/<attachment_id>"; the original
    filename lives only in this row.
    """

    __tablename__ = "wb_attachments"

    id: Mapped[UUID] = mapped_column(
        UUIDType(), primary_key=True, default=uuid4
    )
    report_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("wb_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False, default="application/octet-stream")
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    storage_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    av_status: Mapped[AvStatus] = mapped_column(
        Enum(
            AvStatus,
            name="wb_av_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=AvStatus.PENDING,
    )
    uploaded_by_role: Mapped[str] = mapped_column(String(20), nullable=False, default="reporter")
    scanned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    @property
    def is_clean(self) -> bool:
        return self.av_status == AvStatus.CLEAN

    def __repr__(self) -> str:
        return f"<Attachment {self.filename} ({self.av_status.value})>"
