"""Storage backend that persists nothing."""

import structlog

from sessionlogs.sessions.models import SessionRecord

from .base import StorageBackend

logger = structlog.get_logger()


class NullStorage(StorageBackend):
    """Discard sessions, optionally logging a summary of each one."""

    name = "null"

    def __init__(self, console: bool = True):
        self.console = console

    def write(self, record: SessionRecord) -> None:
        if self.console:
            logger.info(
                "Session finished (not stored)",
                storage=self.name,
                sessionid=record.session_id,
                app=record.app,
                user=record.user,
                inputs=len(record.inputs),
                errors=len(record.errors),
                outputs=len(record.outputs),
                duration_seconds=record.duration_seconds,
            )
