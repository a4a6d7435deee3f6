"""Local filesystem storage adapter for report attachments.

The storage root must live outside any directory served as static content.
"""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import aiofiles
import aiofiles.os

from app.adapters.storage.base import StorageAdapter, StorageConfig

logger = logging.getLogger(__name__)


class LocalStorageAdapter(StorageAdapter):
    """Stores attachment bytes as plain files under a root directory."""

    name = "local"

    def __init__(self, config: StorageConfig):
        super().__init__(config)
        self.base_path = os.path.abspath(config.local_path)

    async def connect(self) -> bool:
        """Ensure base directory exists and is writable."""
        try:
            os.makedirs(self.base_path, exist_ok=True)

            test_file = os.path.join(self.base_path, ".write_test")
            async with aiofiles.open(test_file, "w") as f:
                await f.write("test")
            await aiofiles.os.remove(test_file)

            logger.info("Local storage connected: %s", self.base_path)
            return True
        except OSError as e:
            logger.error("Failed to connect local storage: %s", e)
            return False

    async def health_check(self) -> dict[str, Any]:
        """Check local storage health."""
        try:
            stat = os.statvfs(self.base_path)
            free_bytes = stat.f_bavail * stat.f_frsize
            total_bytes = stat.f_blocks * stat.f_frsize
            return {
                "status": "healthy",
                "backend": "local",
                "free_bytes": free_bytes,
                "total_bytes": total_bytes,
            }
        except OSError as e:
            return {
                "status": "unhealthy",
                "backend": "local",
                "error": str(e),
            }

    def _full_path(self, key: str) -> str:
        """Get full filesystem path for a key.

        Raises:
            ValueError: The key would resolve outside the storage root.
        """
        safe_key = os.path.normpath(key).lstrip(os.sep)
        full_path = os.path.abspath(os.path.join(self.base_path, safe_key))
        if os.path.commonpath([full_path, self.base_path]) != self.base_path or full_path == self.base_path:
            raise ValueError(f"Storage key escapes root: {key!r}")
        return full_path

    async def upload_bytes(self, data: bytes, key: str) -> None:
        """Write bytes, creating the per-report directory on demand."""
        full_path = self._full_path(key)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)

        async with aiofiles.open(full_path, "wb") as f:
            await f.write(data)

    async def stream_download(
        self,
        key: str,
        chunk_size: int | None = None,
    ) -> AsyncIterator[bytes]:
        """Stream file content in chunks."""
        full_path = self._full_path(key)

        if not os.path.exists(full_path):
            raise FileNotFoundError(f"File not found: {key}")

        async with aiofiles.open(full_path, "rb") as f:
            while chunk := await f.read(chunk_size or self.config.chunk_size):
                yield chunk

    async def exists(self, key: str) -> bool:
        return os.path.isfile(self._full_path(key))

    async def delete(self, key: str) -> bool:
        """Delete a file and prune the report directory once it is empty."""
        full_path = self._full_path(key)

        if not os.path.exists(full_path):
            return False

        try:
            await aiofiles.os.remove(full_path)
        except FileNotFoundError:
            return False

        dir_path = os.path.dirname(full_path)
        while dir_path != self.base_path:
            if os.path.isdir(dir_path) and not os.listdir(dir_path):
                os.rmdir(dir_path)
                dir_path = os.path.dirname(dir_path)
            else:
                break

        return True

    def get_file_path(self, key: str) -> str:
        """Get the full filesystem path for a key."""
        return self._full_path(key)
