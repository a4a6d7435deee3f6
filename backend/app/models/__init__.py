"""SQLAlchemy models for WB Desk."""

from app.models.attachment import Attachment, AvStatus
from app.models.audit import ActorRole, AuditAction, AuditEntry
from app.models.report import Message, ReplyToken, Report, ReportStatus, SenderRole
from app.models.user import Category, User

__all__ = [
    "ActorRole",
    "Attachment",
    "AuditAction",
    "AuditEntry",
    "AvStatus",
    "Category",
    "Message",
    "ReplyToken",
    "Report",
    "ReportStatus",
    "SenderRole",
    "User",
]
