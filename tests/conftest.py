"""Shared fixtures for sessionlogs tests."""

import os
from datetime import UTC, datetime, timedelta

import pytest

from sessionlogs.errors import ChannelError
from sessionlogs.storage.base import StorageBackend
from sessionlogs.tracking.channel import Channel, Priority


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test touching the filesystem or a database"
    )


# Set test environment variables before importing modules
os.environ.setdefault("SESSIONLOGS_STORAGE_MODE", "null")


@pytest.fixture
def mock_env_vars(monkeypatch, tmp_path):
    """Set up test environment variables."""
    monkeypatch.setenv("SESSIONLOGS_APP_NAME", "test-app")
    monkeypatch.setenv("SESSIONLOGS_STORAGE_MODE", "json")
    monkeypatch.setenv("SESSIONLOGS_LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SESSIONLOGS_DATABASE_URL", f"sqlite:///{tmp_path / 'sessions.sqlite'}")
    monkeypatch.setenv("SESSIONLOGS_DEFAULT_USER", "test-user")
    monkeypatch.delenv("SESSIONLOGS_ON_UNLOAD", raising=False)
    monkeypatch.delenv("SESSIONLOGS_EXCLUDE_USERS", raising=False)
    monkeypatch.delenv("SHINYPROXY_USERNAME", raising=False)


class RecordingChannel(Channel):
    """Channel that records every push and can be told to fail."""

    def __init__(self):
        self.pushes: list[tuple[str, object, Priority]] = []
        self.fail = False
        self.closed = False

    def publish(self, identifier, payload, priority=Priority.VALUE):
        if self.fail:
            raise ChannelError(f"Push to {identifier} refused")
        self.pushes.append((identifier, payload, priority))

    def close(self):
        self.closed = True

    def identifiers(self) -> list[str]:
        return [identifier for identifier, _, _ in self.pushes]

    def pushes_to(self, identifier: str) -> list:
        return [payload for name, payload, _ in self.pushes if name == identifier]


@pytest.fixture
def recording_channel():
    """Channel capturing pushes for assertions."""
    return RecordingChannel()


class FixedClock:
    """Deterministic session clock."""

    def __init__(self, start_ns: int = 1_700_000_000_000_000_000):
        self._ns = start_ns
        self._now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def start_ns(self) -> int:
        self._ns += 1
        return self._ns

    def now(self) -> datetime:
        self._now += timedelta(seconds=30)
        return self._now


@pytest.fixture
def fixed_clock():
    """Clock with predictable timestamps, advancing 30s per reading."""
    return FixedClock()


class MemoryStorage(StorageBackend):
    """Storage backend keeping written records in a list."""

    name = "memory"

    def __init__(self):
        self.records = []

    def write(self, record):
        self.records.append(record)


@pytest.fixture
def memory_storage():
    """Storage backend keeping written records in a list."""
    return MemoryStorage()
