"""Case manager endpoints.

Every service call below starts with the manager role check, so a session
without the role gets 403 before any case is read.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import Response, StreamingResponse

from app.api.v1.auth import require_actor
from app.api.v1.deps import (
    get_access_resolver,
    get_attachment_service,
    get_case_service,
    get_thread_service,
    read_upload,
)
from app.api.v1.wb_views import download_response, message_response
from app.config import Settings, get_settings
from app.core.identity import Actor
from app.models.report import ReportStatus
from app.schemas.wb import (
    AttachmentResponse,
    AttachmentUploaded,
    AuditEntryResponse,
    AvSelftestResponse,
    CaseDetailResponse,
    CaseUpdate,
    CaseUpdateResponse,
    MessageCreate,
    MessageResponse,
    ReporterResponse,
    ReportSummary,
)
from app.services.access import AccessResolver
from app.services.attachments import AttachmentService
from app.services.cases import CaseManagerService
from app.services.thread import ThreadService

router = APIRouter()


@router.get("/reports", response_model=list[ReportSummary])
async def list_reports(
    actor: Annotated[Actor, Depends(require_actor)],
    cases: Annotated[CaseManagerService, Depends(get_case_service)],
    status_filter: ReportStatus | None = Query(None, alias="status"),
    q: str | None = Query(None, max_length=100),
) -> list[ReportSummary]:
    """List cases, most recently updated first."""
    reports = await cases.list_cases(actor, status=status_filter, search=q)
    return [ReportSummary.model_validate(r) for r in reports]


@router.get("/reports/by-protocol/{protocol_code}", response_model=ReportSummary)
async def get_report_by_protocol(
    protocol_code: str,
    actor: Annotated[Actor, Depends(require_actor)],
    cases: Annotated[CaseManagerService, Depends(get_case_service)],
) -> ReportSummary:
    report = await cases.find_by_protocol(actor, protocol_code)
    return ReportSummary.model_validate(report)


@router.get("/reports/{report_id}", response_model=CaseDetailResponse)
async def get_report(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    cases: Annotated[CaseManagerService, Depends(get_case_service)],
) -> CaseDetailResponse:
    """Get the decrypted case. Viewing is recorded in the audit trail."""
    detail = await cases.get_case_detail(actor, report_id)
    reporter = None
    if detail.reporter is not None:
        reporter = ReporterResponse(
            id=detail.reporter.id,
            full_name=detail.reporter.full_name,
            email=detail.reporter.email,
        )
    return CaseDetailResponse(
        report=ReportSummary.model_validate(detail.report),
        description=detail.description,
        policy_version=detail.report.policy_version,
        messages=[message_response(m) for m in detail.messages],
        reporter=reporter,
    )


@router.patch("/reports/{report_id}", response_model=CaseUpdateResponse)
async def update_report(
    report_id: UUID,
    payload: CaseUpdate,
    actor: Annotated[Actor, Depends(require_actor)],
    cases: Annotated[CaseManagerService, Depends(get_case_service)],
) -> CaseUpdateResponse:
    """Change status or category, or acknowledge receipt."""
    outcome = await cases.update_case(actor, report_id, payload.model_dump(exclude_unset=True))
    report = ReportSummary.model_validate(outcome.report) if outcome.report else None
    return CaseUpdateResponse(updated=outcome.updated, report=report)


@router.get("/reports/{report_id}/audit", response_model=list[AuditEntryResponse])
async def get_report_audit(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    cases: Annotated[CaseManagerService, Depends(get_case_service)],
) -> list[AuditEntryResponse]:
    entries = await cases.get_audit_trail(actor, report_id)
    return [AuditEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/reports/{report_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_manager_message(
    report_id: UUID,
    payload: MessageCreate,
    actor: Annotated[Actor, Depends(require_actor)],
    threads: Annotated[ThreadService, Depends(get_thread_service)],
) -> MessageResponse:
    """Reply to the reporter. The first reply stamps first_response_at."""
    message = await threads.post_manager_message(actor, report_id, payload.body)
    return message_response(message)


@router.get("/reports/{report_id}/attachments", response_model=list[AttachmentResponse])
async def list_report_attachments(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> list[AttachmentResponse]:
    """List every attachment of a case, whatever its scan status."""
    case = await access.for_manager(report_id, actor)
    items = await attachments.list_attachments(case)
    return [AttachmentResponse.model_validate(a) for a in items]


@router.post(
    "/reports/{report_id}/attachments",
    response_model=AttachmentUploaded,
    status_code=status.HTTP_201_CREATED,
)
async def upload_report_attachment(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    file: UploadFile = File(...),
) -> AttachmentUploaded:
    case = await access.for_manager(report_id, actor)
    data = await read_upload(file, settings.wb_max_attachment_bytes)
    attachment = await attachments.upload(case, file.filename, file.content_type, data)
    return AttachmentUploaded(id=attachment.id, av_status=attachment.av_status)


@router.get("/attachments/{attachment_id}/download")
async def download_attachment(
    attachment_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> StreamingResponse:
    """Download any attachment, including pending and quarantined ones."""
    download = await attachments.open_manager_download(actor, attachment_id)
    return download_response(download)


@router.post("/attachments/{attachment_id}/rescan", response_model=AttachmentResponse)
async def rescan_attachment(
    attachment_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> AttachmentResponse:
    attachment = await attachments.rescan(actor, attachment_id)
    return AttachmentResponse.model_validate(attachment)


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(
    attachment_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> Response:
    await attachments.delete(actor, attachment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/av/selftest", response_model=AvSelftestResponse)
async def av_selftest(
    actor: Annotated[Actor, Depends(require_actor)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> AvSelftestResponse:
    """Scan a harmless file to verify the antivirus wiring."""
    result = await attachments.av_selftest(actor)
    return AvSelftestResponse(**result)
