"""Conversions from service results to API responses."""

from urllib.parse import quote

from fastapi.responses import StreamingResponse

from app.schemas.wb import MessageResponse, ThreadResponse
from app.services.attachments import AttachmentDownload
from app.services.thread import ThreadMessage, ThreadView


def message_response(message: ThreadMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        sender_role=message.sender_role,
        body=message.body,
        created_at=message.created_at,
    )


def thread_response(view: ThreadView) -> ThreadResponse:
    return ThreadResponse(
        id=view.report_id,
        protocol=view.protocol,
        title=view.title,
        status=view.status,
        description=view.description,
        created_at=view.created_at,
        acknowledged_at=view.acknowledged_at,
        first_response_at=view.first_response_at,
        last_update=view.last_update,
        messages=[message_response(m) for m in view.messages],
    )


def content_disposition(filename: str) -> str:
    """Attachment disposition with an ASCII fallback and an RFC 5987 name."""
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "_") or "file"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def download_response(download: AttachmentDownload) -> StreamingResponse:
    return StreamingResponse(
        download.stream,
        media_type=download.media_type,
        headers={
            "Content-Disposition": content_disposition(download.filename),
            "X-Content-Type-Options": "nosniff",
        },
    )
