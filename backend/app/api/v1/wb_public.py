"""Public whistleblowing endpoints.

No session is read here. Anonymous reporters prove access to a case with the
protocol code plus the reply token, sent in the X-Reply-Token header so it
stays out of URLs and access logs.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Header, UploadFile, status
from fastapi.responses import StreamingResponse

from app.api.v1.deps import (
    get_access_resolver,
    get_attachment_service,
    get_intake_service,
    get_thread_service,
    read_upload,
)
from app.api.v1.wb_views import download_response, message_response, thread_response
from app.config import Settings, get_settings
from app.middleware.rate_limit import message_rate_limit, report_rate_limit
from app.schemas.wb import (
    AnonymousReportCreated,
    AttachmentResponse,
    AttachmentUploaded,
    CategoryResponse,
    MessageCreate,
    MessageResponse,
    ReportCreate,
    ThreadResponse,
)
from app.services.access import AccessResolver
from app.services.attachments import AttachmentService
from app.services.intake import IntakeService, ReportDraft
from app.services.thread import ThreadService

router = APIRouter()

ReplyToken = Annotated[str | None, Header(alias="X-Reply-Token")]


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    intake: Annotated[IntakeService, Depends(get_intake_service)],
) -> list[CategoryResponse]:
    """List active report categories for the intake form."""
    categories = await intake.list_active_categories()
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post(
    "/anon/reports",
    response_model=AnonymousReportCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(report_rate_limit)],
)
async def create_anonymous_report(
    payload: ReportCreate,
    intake: Annotated[IntakeService, Depends(get_intake_service)],
) -> AnonymousReportCreated:
    """Submit an anonymous report.

    The reply token in the response is shown exactly once.
    """
    receipt = await intake.create_anonymous_report(ReportDraft(**payload.model_dump()))
    return AnonymousReportCreated(protocol=receipt.protocol, reply_token=receipt.reply_token)


@router.get("/anon/thread/{protocol}", response_model=ThreadResponse)
async def get_anonymous_thread(
    protocol: str,
    threads: Annotated[ThreadService, Depends(get_thread_service)],
    reply_token: ReplyToken = None,
) -> ThreadResponse:
    """Read a case and its messages with the reply token."""
    view = await threads.get_anonymous_thread(protocol, reply_token)
    return thread_response(view)


@router.post(
    "/anon/thread/{protocol}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(message_rate_limit)],
)
async def post_anonymous_message(
    protocol: str,
    payload: MessageCreate,
    threads: Annotated[ThreadService, Depends(get_thread_service)],
    reply_token: ReplyToken = None,
) -> MessageResponse:
    """Add a reporter message to an anonymous case."""
    message = await threads.post_anonymous_message(protocol, reply_token, payload.body)
    return message_response(message)


@router.get("/anon/attachments/{protocol}", response_model=list[AttachmentResponse])
async def list_anonymous_attachments(
    protocol: str,
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
    reply_token: ReplyToken = None,
) -> list[AttachmentResponse]:
    """List the clean attachments of an anonymous case."""
    case = await access.for_reply_token(protocol, reply_token)
    items = await attachments.list_attachments(case)
    return [AttachmentResponse.model_validate(a) for a in items]


@router.post(
    "/anon/attachments/{protocol}",
    response_model=AttachmentUploaded,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(message_rate_limit)],
)
async def upload_anonymous_attachment(
    protocol: str,
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    file: UploadFile = File(...),
    reply_token: ReplyToken = None,
) -> AttachmentUploaded:
    """Upload a file to an anonymous case. It is scanned before this returns."""
    case = await access.for_reply_token(protocol, reply_token)
    data = await read_upload(file, settings.wb_max_attachment_bytes)
    attachment = await attachments.upload(case, file.filename, file.content_type, data)
    return AttachmentUploaded(id=attachment.id, av_status=attachment.av_status)


@router.get("/anon/attachments/{protocol}/{attachment_id}")
async def download_anonymous_attachment(
    protocol: str,
    attachment_id: UUID,
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    attachments: Annotated[AttachmentService, Depends(get_attachment_service)],
    reply_token: ReplyToken = None,
) -> StreamingResponse:
    """Download a clean attachment of an anonymous case."""
    case = await access.for_reply_token(protocol, reply_token)
    download = await attachments.open_download(case, attachment_id)
    return download_response(download)
