"""Database storage using SQLAlchemy.

Four tables keyed by sessionid: `session`, `inputs`, `errors`, `outputs`.
Tables are created on first write. Works with any SQLAlchemy URL; SQLite is
the default.
"""

import json
from typing import Any

import structlog
from sqlalchemy import Column, Float, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from sessionlogs.errors import StorageError
from sessionlogs.sessions.models import SessionRecord, format_timestamp

from .base import SessionLogs, StorageBackend

logger = structlog.get_logger()

Base = declarative_base()


class SessionRow(Base):
    __tablename__ = "session"

    sessionid = Column(String(64), primary_key=True)
    app = Column(String(255), nullable=False)
    user = Column(String(255), nullable=False)
    server_connected = Column(String(40), nullable=False)
    server_disconnected = Column(String(40), nullable=True)
    browser_info = Column(Text, nullable=False, default="{}")


class InputRow(Base):
    __tablename__ = "inputs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sessionid = Column(String(64), ForeignKey("session.sessionid"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timestamp = Column(Float, nullable=False)
    value = Column(Text, nullable=True)  # JSON encoded
    type = Column(String(255), nullable=True)


class ErrorRow(Base):
    __tablename__ = "errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sessionid = Column(String(64), ForeignKey("session.sessionid"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timestamp = Column(Float, nullable=False)
    error = Column(Text, nullable=True)


class OutputRow(Base):
    __tablename__ = "outputs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sessionid = Column(String(64), ForeignKey("session.sessionid"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timestamp = Column(Float, nullable=False)
    binding = Column(String(255), nullable=True)


class DatabaseStorage(StorageBackend):
    """Write sessions to a relational database.

    Example:
        storage = DatabaseStorage("sqlite:///logs/sessionlogs.sqlite")
        storage.write(record)
        logs = storage.read_logs()
    """

    name = "database"

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        try:
            self.engine = create_engine(url, echo=echo)
        except SQLAlchemyError as e:
            raise StorageError(f"Invalid database URL {url!r}: {e}") from e
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            Base.metadata.create_all(self.engine)
            self._schema_ready = True

    def write(self, record: SessionRecord) -> str:
        try:
            self._ensure_schema()
            with self._session_factory.begin() as db:
                db.add(SessionRow(
                    sessionid=record.session_id,
                    app=record.app,
                    user=record.user,
                    server_connected=format_timestamp(record.connected_at),
                    server_disconnected=format_timestamp(record.disconnected_at),
                    browser_info=json.dumps(record.browser_info),
                ))
                # Parent row must exist before the event rows reference it
                db.flush()
                db.add_all(
                    InputRow(
                        sessionid=record.session_id,
                        name=event["name"],
                        timestamp=float(event["timestamp"]),
                        value=json.dumps(event.get("value"), default=str),
                        type=event.get("type"),
                    )
                    for event in record.inputs
                )
                db.add_all(
                    ErrorRow(
                        sessionid=record.session_id,
                        name=event["name"],
                        timestamp=float(event["timestamp"]),
                        error=event.get("error"),
                    )
                    for event in record.errors
                )
                db.add_all(
                    OutputRow(
                        sessionid=record.session_id,
                        name=event["name"],
                        timestamp=float(event["timestamp"]),
                        binding=event.get("binding"),
                    )
                    for event in record.outputs
                )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Session {record.session_id} has a malformed event: {e!r}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Could not write session {record.session_id} to {self.engine.url}: {e}") from e

        logger.info("Session written", storage=self.name, sessionid=record.session_id, events=record.event_count)
        return record.session_id

    def read_logs(self) -> SessionLogs:
        logs = SessionLogs()
        try:
            self._ensure_schema()
            with self._session_factory() as db:
                for row in db.scalars(select(SessionRow).order_by(SessionRow.server_connected)):
                    session: dict[str, Any] = {
                        "app": row.app,
                        "user": row.user,
                        "server_connected": row.server_connected,
                        "sessionid": row.sessionid,
                        "server_disconnected": row.server_disconnected,
                    }
                    for key, value in json.loads(row.browser_info or "{}").items():
                        session.setdefault(key, value)
                    logs.session.append(session)

                for row in db.scalars(select(InputRow).order_by(InputRow.id)):
                    logs.inputs.append({
                        "sessionid": row.sessionid,
                        "name": row.name,
                        "timestamp": row.timestamp,
                        "value": json.loads(row.value) if row.value is not None else None,
                        "type": row.type,
                    })
                for row in db.scalars(select(ErrorRow).order_by(ErrorRow.id)):
                    logs.errors.append({
                        "sessionid": row.sessionid,
                        "name": row.name,
                        "timestamp": row.timestamp,
                        "error": row.error,
                    })
                for row in db.scalars(select(OutputRow).order_by(OutputRow.id)):
                    logs.outputs.append({
                        "sessionid": row.sessionid,
                        "name": row.name,
                        "timestamp": row.timestamp,
                        "binding": row.binding,
                    })
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read sessions from {self.engine.url}: {e}") from e
        return logs

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()
