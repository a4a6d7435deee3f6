"""Base storage adapter interface for attachment bytes.

Keys are opaque relative paths of the form "<report_id>/<attachment_id>".
Adapters never derive a key from a user-supplied filename.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass
class StorageConfig:
    """Configuration for storage adapter."""

    backend: str = "local"
    local_path: str = "/app/wb-storage"
    chunk_size: int = 64 * 1024


class StorageAdapter(ABC):
    """Abstract base class for attachment storage."""

    name: str = "base"

    def __init__(self, config: StorageConfig):
        self.config = config

    @abstractmethod
    async def connect(self) -> bool:
        """Prepare the backend.

        Returns:
            True if the backend is usable.
        """
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Report backend status for the /health endpoint."""
        ...

    @abstractmethod
    async def upload_bytes(self, data: bytes, key: str) -> None:
        """Write data under key, replacing anything already there.

        Raises:
            OSError: The bytes could not be written.
        """
        ...

    @abstractmethod
    def stream_download(self, key: str, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """Yield the stored bytes in chunks.

        Raises:
            FileNotFoundError: Nothing is stored under key.
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove the bytes under key.

        Returns:
            False if nothing was stored there. A missing object is not an error.
        """
        ...

    @abstractmethod
    def get_file_path(self, key: str) -> str:
        """Filesystem path for key, used to hand the file to the scanner."""
        ...
