"""Core building blocks for WB Desk."""

from app.core.crypto import PayloadCipher
from app.core.identity import Actor, authorize
from app.core.manager import ManagerIdentity, ManagerResolver
from app.core.tokens import (
    generate_protocol_code,
    generate_reply_token,
    hash_token,
    sanitize_filename,
)

__all__ = [
    "Actor",
    "ManagerIdentity",
    "ManagerResolver",
    "PayloadCipher",
    "authorize",
    "generate_protocol_code",
    "generate_reply_token",
    "hash_token",
    "sanitize_filename",
]
