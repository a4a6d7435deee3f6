"""Shared route dependencies: process-wide components and service factories."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.storage.base import StorageAdapter
from app.config import Settings, get_settings
from app.core.crypto import PayloadCipher
from app.core.manager import ManagerResolver
from app.database import get_db
from app.exceptions import ValidationError
from app.notifications.notifier import Notifier
from app.scanning.antivirus import AntivirusScanner
from app.services.access import AccessResolver
from app.services.attachments import AttachmentService
from app.services.cases import CaseManagerService
from app.services.intake import IntakeService
from app.services.thread import ThreadService

UPLOAD_CHUNK_SIZE = 64 * 1024


@lru_cache
def _cipher_for(key_b64: str) -> PayloadCipher:
    return PayloadCipher.from_base64(key_b64)


def get_cipher(settings: Annotated[Settings, Depends(get_settings)]) -> PayloadCipher:
    """Cipher for the configured key. A bad key fails the request, not startup."""
    return _cipher_for(settings.wb_aes_key)


def get_manager_resolver(request: Request) -> ManagerResolver:
    return request.app.state.manager_resolver


def get_storage(request: Request) -> StorageAdapter:
    return request.app.state.storage


def get_scanner(request: Request) -> AntivirusScanner:
    return request.app.state.scanner


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_access_resolver(
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[ManagerResolver, Depends(get_manager_resolver)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AccessResolver:
    return AccessResolver(db, resolver, settings.wb_manager_role)


def get_intake_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cipher: Annotated[PayloadCipher, Depends(get_cipher)],
    resolver: Annotated[ManagerResolver, Depends(get_manager_resolver)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IntakeService:
    return IntakeService(db, cipher, resolver, notifier, settings)


def get_thread_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cipher: Annotated[PayloadCipher, Depends(get_cipher)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ThreadService:
    return ThreadService(db, cipher, access, notifier, settings)


def get_attachment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[StorageAdapter, Depends(get_storage)],
    scanner: Annotated[AntivirusScanner, Depends(get_scanner)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AttachmentService:
    return AttachmentService(db, storage, scanner, access, settings)


def get_case_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cipher: Annotated[PayloadCipher, Depends(get_cipher)],
    access: Annotated[AccessResolver, Depends(get_access_resolver)],
    threads: Annotated[ThreadService, Depends(get_thread_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CaseManagerService:
    return CaseManagerService(db, cipher, access, threads, settings)


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload into memory, refusing anything past max_bytes.

    Reading stops one chunk after the cap so oversized bodies are never
    buffered in full.
    """
    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(UPLOAD_CHUNK_SIZE):
        total += len(chunk)
        if total > max_bytes:
            raise ValidationError(f"File exceeds the {max_bytes} byte limit")
        chunks.append(chunk)
    return b"".join(chunks)
