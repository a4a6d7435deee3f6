"""WB Desk services package.

Contains the business logic for:
- Intake: creation of anonymous and identified reports
- Threads: encrypted messaging on a case
- Attachments: upload, antivirus gating and download
- Cases: manager listing, detail and lifecycle updates
"""

from app.services.access import AccessResolver, CaseAccess, Viewer
from app.services.attachments import AttachmentService
from app.services.audit import AuditService
from app.services.cases import CaseManagerService
from app.services.intake import IntakeService, ReportDraft
from app.services.store import CaseStore
from app.services.thread import ThreadService

__all__ = [
    "AccessResolver",
    "AttachmentService",
    "AuditService",
    "CaseAccess",
    "CaseManagerService",
    "CaseStore",
    "IntakeService",
    "ReportDraft",
    "ThreadService",
    "Viewer",
]
