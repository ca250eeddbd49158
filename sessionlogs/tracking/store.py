"""Client-side key-value stores backing the local event buffer.

A store holds string values under string keys, the way browser storage does.
Stores may enforce a byte quota; a write that would exceed it raises
StorageQuotaExceededError and leaves the stored value untouched.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from sessionlogs.config import get_settings
from sessionlogs.errors import StorageQuotaExceededError

logger = structlog.get_logger()


class KeyValueStore(ABC):
    """Abstract persistent key-value store.

    Contents are mirrored in memory with a running byte count, so a write
    costs the same whatever the store already holds. Subclasses persist
    individual writes and removals.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._size = 0

    @staticmethod
    def _entry_size(key: str, value: str) -> int:
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    @abstractmethod
    def _persist_set(self, key: str, value: str) -> None:
        """Persist a single write."""
        pass

    @abstractmethod
    def _persist_remove(self, key: str) -> None:
        """Persist a single removal."""
        pass

    @property
    def size_bytes(self) -> int:
        """Bytes currently counted against the quota."""
        return self._size

    def get(self, key: str) -> Optional[str]:
        """Get the value stored under key."""
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Store value under key.

        Raises:
            StorageQuotaExceededError: If the write would exceed the quota
        """
        size = self._size + self._entry_size(key, value)
        previous = self._data.get(key)
        if previous is not None:
            size -= self._entry_size(key, previous)
        if self.quota_bytes is not None and size > self.quota_bytes:
            raise StorageQuotaExceededError(key, size, self.quota_bytes)

        self._persist_set(key, value)
        self._data[key] = value
        self._size = size

    def remove(self, key: str) -> None:
        """Remove key if present."""
        previous = self._data.get(key)
        if previous is None:
            return
        self._persist_remove(key)
        del self._data[key]
        self._size -= self._entry_size(key, previous)

    def keys(self) -> list[str]:
        """All stored keys."""
        return list(self._data)


class MemoryStore(KeyValueStore):
    """In-process store, lost with the process."""

    def _persist_set(self, key: str, value: str) -> None:
        pass

    def _persist_remove(self, key: str) -> None:
        pass


class JsonFileStore(KeyValueStore):
    """Store persisted on disk as a journal of JSON lines.

    Each write appends `{"k": key, "v": value}` and each removal appends
    `{"k": key}`; the journal is replayed on open. Survives process restarts
    the way browser storage survives page reloads.
    """

    def __init__(self, path: str | Path, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._replay()

    def _replay(self) -> None:
        if not self.path.exists():
            return
        with self.path.open(encoding="utf-8") as journal:
            for line_number, line in enumerate(journal, start=1):
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                    key = str(entry["k"])
                except (json.JSONDecodeError, TypeError, KeyError):
                    logger.warning("Skipping corrupt client store entry", path=str(self.path), line=line_number)
                    continue
                if "v" in entry:
                    self._data[key] = str(entry["v"])
                else:
                    self._data.pop(key, None)
        self._size = sum(self._entry_size(k, v) for k, v in self._data.items())

    def _append(self, entry: dict) -> None:
        with self.path.open("a", encoding="utf-8") as journal:
            journal.write(json.dumps(entry) + "\n")

    def _persist_set(self, key: str, value: str) -> None:
        self._append({"k": key, "v": value})

    def _persist_remove(self, key: str) -> None:
        self._append({"k": key})


def build_store(path: str | Path | None = None, quota_bytes: Optional[int] = None) -> KeyValueStore:
    """Create the client store, file-backed when a path is given.

    The quota defaults to the `buffer_quota_bytes` setting.
    """
    if quota_bytes is None:
        quota_bytes = get_settings().buffer_quota_bytes
    if path is not None:
        return JsonFileStore(path, quota_bytes=quota_bytes)
    return MemoryStore(quota_bytes=quota_bytes)
