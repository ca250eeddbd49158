"""Storage backends for finished sessions.

Every backend implements `write(record)`; pick one at configuration time:
- JsonStorage: one JSON document per session
- DatabaseStorage: SQLAlchemy tables (SQLite by default)
- NullStorage: nothing persisted
"""

from .base import SessionLogs, StorageBackend, write_logs
from .database import DatabaseStorage
from .factory import build_storage
from .json_storage import JsonStorage, read_json_logs
from .null import NullStorage

__all__ = [
    # Interface
    "StorageBackend",
    "SessionLogs",
    "write_logs",
    "build_storage",
    # Backends
    "JsonStorage",
    "DatabaseStorage",
    "NullStorage",
    # Readers
    "read_json_logs",
]
