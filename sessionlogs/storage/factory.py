"""Build the configured storage backend."""

from typing import Optional

from sessionlogs.config import Settings, StorageMode, get_settings

from .base import StorageBackend
from .database import DatabaseStorage
from .json_storage import JsonStorage
from .null import NullStorage


def build_storage(settings: Optional[Settings] = None) -> StorageBackend:
    """Create the backend selected by `storage_mode`."""
    settings = settings or get_settings()

    if settings.storage_mode == StorageMode.JSON:
        return JsonStorage(settings.logs_dir)
    elif settings.storage_mode == StorageMode.DATABASE:
        return DatabaseStorage(settings.database_url)
    elif settings.storage_mode == StorageMode.NULL:
        return NullStorage()
    else:
        raise ValueError(f"Unknown storage mode: {settings.storage_mode}")
