"""Request and response schemas for the whistleblowing API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.attachment import AvStatus
from app.models.audit import ActorRole
from app.models.report import ReportStatus, SenderRole


class ReportCreate(BaseModel):
    """Intake form submission."""

    title: str
    description: str
    category_id: int | None = None
    policy_accepted: bool = False


class AnonymousReportCreated(BaseModel):
    """Shown once. The reply token cannot be recovered later."""

    protocol: str
    reply_token: str


class IdentifiedReportCreated(BaseModel):
    id: UUID
    protocol: str


class MessageCreate(BaseModel):
    body: str


class MessageResponse(BaseModel):
    id: UUID
    sender_role: SenderRole
    body: str
    created_at: datetime


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ThreadResponse(BaseModel):
    """A case with its decrypted description and messages."""

    id: UUID
    protocol: str
    title: str
    status: ReportStatus
    description: str
    created_at: datetime
    acknowledged_at: datetime | None = None
    first_response_at: datetime | None = None
    last_update: datetime
    messages: list[MessageResponse] = Field(default_factory=list)


class ReportSummary(BaseModel):
    """List entry; no decrypted content."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_code: str
    title: str
    status: ReportStatus
    is_anonymous: bool
    category_id: int | None = None
    created_at: datetime
    acknowledged_at: datetime | None = None
    first_response_at: datetime | None = None
    closed_at: datetime | None = None
    last_update: datetime


class ReporterResponse(BaseModel):
    id: UUID
    full_name: str | None = None
    email: str | None = None


class CaseDetailResponse(BaseModel):
    """Manager view. reporter is always null for anonymous cases."""

    report: ReportSummary
    description: str
    policy_version: str | None = None
    messages: list[MessageResponse] = Field(default_factory=list)
    reporter: ReporterResponse | None = None


class CaseUpdate(BaseModel):
    status: ReportStatus | None = None
    category_id: int | None = None
    acknowledge: bool | None = None


class CaseUpdateResponse(BaseModel):
    updated: bool
    report: ReportSummary | None = None


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    mime_type: str
    size_bytes: int
    sha256: str
    av_status: AvStatus
    created_at: datetime


class AttachmentUploaded(BaseModel):
    id: UUID
    av_status: AvStatus


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    actor_role: ActorRole
    actor_user_id: UUID | None = None
    meta: dict
    created_at: datetime


class AvSelftestResponse(BaseModel):
    mode: str
    status: str
    exit_code: int | None = None
    detail: str | None = None
