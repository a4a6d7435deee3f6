"""Protocol codes, reply tokens and filename hygiene."""

import hashlib
import re
import secrets
from datetime import datetime

from app.utils.timeutil import utcnow

REPLY_TOKEN_BYTES = 32
PROTOCOL_PATTERN = re.compile(r"^WB-\d{4}-\d{6}$")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_PATH_SEPARATORS = re.compile(r"[/\\]")


def generate_protocol_code(now: datetime | None = None) -> str:
    """Return a human-shareable code such as WB-2025-004217.

    Not unique by construction; the unique index on wb_reports is the backstop.
    """
    year = (now or utcnow()).year
    return f"WB-{year}-{secrets.randbelow(1_000_000):06d}"


def generate_reply_token() -> str:
    """256 bits of randomness as 64 hex characters."""
    return secrets.token_hex(REPLY_TOKEN_BYTES)


def hash_token(raw: str) -> bytes:
    """BLAKE2b-512 digest used both to store and to verify reply tokens."""
    return hashlib.blake2b(raw.encode("utf-8"), digest_size=64).digest()


def tokens_match(stored_hash: bytes, raw: str) -> bool:
    return secrets.compare_digest(bytes(stored_hash), hash_token(raw))


def sanitize_filename(name: str | None, max_length: int = 180) -> str:
    """Strip path separators and control characters, then cap the length."""
    cleaned = _PATH_SEPARATORS.sub("_", name or "")
    cleaned = _CONTROL_CHARS.sub("_", cleaned).strip()
    cleaned = cleaned[:max_length]
    if not cleaned or cleaned in (".", ".."):
        return "file"
    return cleaned
