"""Storage backend interface.

A backend persists one finished SessionRecord per call to `write`. Backends
differ only in where the record goes; every failure surfaces as StorageError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sessionlogs.sessions.models import SessionRecord


@dataclass
class SessionLogs:
    """Stored sessions flattened into four tables keyed by sessionid."""

    session: list[dict] = field(default_factory=list)
    inputs: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    outputs: list[dict] = field(default_factory=list)

    def add(self, document: dict) -> None:
        """Add one stored session document (see SessionRecord.to_dict)."""
        session = dict(document.get("session") or {})
        session_id = session.get("sessionid")
        self.session.append(session)
        for table in ("inputs", "errors", "outputs"):
            rows = getattr(self, table)
            for event in document.get(table) or []:
                rows.append({"sessionid": session_id, **event})

    def __len__(self) -> int:
        return len(self.session)


class StorageBackend(ABC):
    """Abstract storage backend."""

    name: str = "storage"

    @abstractmethod
    def write(self, record: "SessionRecord") -> Any:
        """Persist a finished session.

        Raises:
            StorageError: If the record could not be persisted
        """
        pass

    def read_logs(self) -> SessionLogs:
        """Read back every stored session."""
        raise NotImplementedError(f"{type(self).__name__} cannot read logs back")


def write_logs(storage_mode: StorageBackend, record: "SessionRecord") -> Any:
    """Hand a finished session to the configured backend."""
    if not isinstance(storage_mode, StorageBackend):
        raise TypeError(f"storage_mode must be a StorageBackend, got {type(storage_mode).__name__}")
    return storage_mode.write(record)
