"""Identified reporter endpoints. Every route requires a session."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import StreamingResponse

from app.api.v1.auth import require_actor
from app.api.v1.deps import (
    get_access_resolver,
    get_attachment_service,
    get_intake_service,
    get_thread_service,
    read_upload,
)
from app.api.v1.wb_views import download_response, message_response, thread_response
from app.config import Settings, get_settings
from app.core.identity import Actor
from app.middleware.rate_limit import (
    identified_message_rate_limit,
    identified_report_rate_limit,
)
from app.schemas.wb import (
    AttachmentResponse,
    AttachmentUploaded,
    IdentifiedReportCreated,
    MessageCreate,
    MessageResponse,
    ReportCreate,
    ReportSummary,
    ThreadResponse,
)
from app.services.access import AccessResolver
from app.services.attachments import AttachmentService
from app.services.intake import IntakeService, ReportDraft
from app.services.thread import ThreadService

router = APIRouter()


@router.post(
    "/reports",
    response_model=IdentifiedReportCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(identified_report_rate_limit)],
)
async def create_identified_report(
    payload: ReportCreate,
    actor: Annotated[Actor, Depends(require_actor)],
    intake: Annotated[IntakeService, Depends(get_intake_service)],
) -> IdentifiedReportCreated:
    """Submit a report tied to the signed-in account."""
    receipt = await intake.create_identified_report(actor, ReportDraft(**payload.model_dump()))
    return IdentifiedReportCreated(id=receipt.report_id, protocol=receipt.protocol)


@router.get("/my/reports", response_model=list[ReportSummary])
async def list_my_reports(
    actor: Annotated[Actor, Depends(require_actor)],
    threads: Annotated[ThreadService, Depends(get_thread_service)],
) -> list[ReportSummary]:
    """List the caller's own identified reports, newest first."""
    reports = await threads.list_my_reports(actor)
    return [ReportSummary.model_validate(r) for r in reports]


@router.get("/my/reports/{report_id}", response_model=ThreadResponse)
async def get_my_report(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    threads: Annotated[ThreadService, Depends(get_thread_service)],
) -> ThreadResponse:
    view = await threads.get_my_report(actor, report_id)
    return thread_response(view)


@router.post(
    "/my/reports/{report_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(identified_message_rate_limit)],
)
async def post_my_message(
    report_id: UUID,
    payload: MessageCreate,
    actor: Annotated[Actor, Depends(require_actor)],
    threads: Annotated[ThreadService, Depends(get_thread_service)],
) -> MessageResponse:
    message = await threads.post_my_message(actor, report_id, payload.body)
    return message_response(message)


@router.get("/my/reports/{report_id}/attachments", response_model=list[AttachmentResponse])
async def list_my_attachments(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> list[AttachmentResponse]:
    """List the clean attachments of one of the caller's reports."""
    case = await access.for_reporter(report_id, actor)
    items = await attachments.list_attachments(case)
    return [AttachmentResponse.model_validate(a) for a in items]


@router.post(
    "/my/reports/{report_id}/attachments",
    response_model=AttachmentUploaded,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(identified_message_rate_limit)],
)
async def upload_my_attachment(
    report_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    file: UploadFile = File(...),
) -> AttachmentUploaded:
    case = await access.for_reporter(report_id, actor)
    data = await read_upload(file, settings.wb_max_attachment_bytes)
    attachment = await attachments.upload(case, file.filename, file.content_type, data)
    return AttachmentUploaded(id=attachment.id, av_status=attachment.av_status)


@router.get("/my/reports/{report_id}/attachments/{attachment_id}")
async def download_my_attachment(
    report_id: UUID,
    attachment_id: UUID,
    actor: Annotated[Actor, Depends(require_actor)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
) -> StreamingResponse:
    case = await access.for_reporter(report_id, actor)
    download = await attachments.open_download(case, attachment_id)
    return download_response(download)
