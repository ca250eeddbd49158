"""JSON file storage - one document per session."""

import json
import re
from pathlib import Path

import structlog

from sessionlogs.errors import StorageError
from sessionlogs.sessions.models import SessionRecord

from .base import SessionLogs, StorageBackend

logger = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class JsonStorage(StorageBackend):
    """Write each session to `<path>/sessionlogs_<app>_<sessionid>.json`."""

    name = "json"

    def __init__(self, path: str | Path, prefix: str = "sessionlogs"):
        self.path = Path(path)
        self.prefix = prefix

    def file_for(self, record: SessionRecord) -> Path:
        app = _UNSAFE_CHARS.sub("_", record.app) or "app"
        return self.path / f"{self.prefix}_{app}_{record.session_id}.json"

    def write(self, record: SessionRecord) -> Path:
        target = self.file_for(record)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            document = json.dumps(record.to_dict(), indent=2, default=str)
            target.write_text(document, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Could not write session {record.session_id} to {target}: {e}") from e

        logger.info("Session written", storage=self.name, path=str(target), events=record.event_count)
        return target

    def read_logs(self) -> SessionLogs:
        return read_json_logs(self.path)


def read_json_logs(path: str | Path) -> SessionLogs:
    """Read every session document in a directory.

    Unreadable files are skipped with a warning.
    """
    logs = SessionLogs()
    directory = Path(path)
    if not directory.is_dir():
        return logs

    for file in sorted(directory.glob("*.json")):
        try:
            document = json.loads(file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable session file", path=str(file), error=str(e))
            continue
        if isinstance(document, dict) and "session" in document:
            logs.add(document)
    return logs
