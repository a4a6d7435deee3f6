"""Attachment storage adapters."""

from app.adapters.storage.base import StorageAdapter, StorageConfig
from app.adapters.storage.local import LocalStorageAdapter

__all__ = [
    "LocalStorageAdapter",
    "StorageAdapter",
    "StorageConfig",
    "build_storage_adapter",
]


def build_storage_adapter(settings: object) -> StorageAdapter:
    """Create the attachment storage adapter from application settings."""
    config = StorageConfig(
        backend="local",
        local_path=getattr(settings, "wb_attachment_path", "/app/wb-storage"),
    )
    return LocalStorageAdapter(config)
