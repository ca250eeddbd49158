"""Tests for the client stores and the local event buffer."""

import json

import pytest

from sessionlogs.errors import StorageQuotaExceededError
from sessionlogs.tracking.buffer import LocalEventBuffer
from sessionlogs.tracking.models import CapturedEvent, ErrorPayload, EventCategory, InputPayload
from sessionlogs.tracking.store import JsonFileStore, MemoryStore, build_store


def make_input(name: str, timestamp: float, value=None) -> CapturedEvent:
    return CapturedEvent(EventCategory.INPUT, name, timestamp, InputPayload(value=value, input_kind="text"))


# =============================================================================
# Stores
# =============================================================================


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_get_remove(self):
        store = MemoryStore()
        store.set("a", "1")

        assert store.get("a") == "1"
        store.remove("a")
        assert store.get("a") is None

    def test_remove_missing_key(self):
        """Removing an unknown key is a no-op."""
        store = MemoryStore()
        store.remove("missing")

        assert store.keys() == []

    def test_quota_refuses_write(self):
        """A write over quota raises and leaves the store untouched."""
        store = MemoryStore(quota_bytes=10)
        store.set("k", "12345")

        with pytest.raises(StorageQuotaExceededError) as exc_info:
            store.set("k2", "123456")

        assert exc_info.value.quota == 10
        assert store.get("k2") is None
        assert store.get("k") == "12345"

    def test_size_tracks_overwrites_and_removals(self):
        store = MemoryStore()
        store.set("a", "123")
        store.set("a", "1")
        store.set("bb", "é")
        store.remove("a")

        assert store.size_bytes == len("bb") + len("é".encode("utf-8"))

    def test_overwrite_counts_only_the_new_value(self):
        """Replacing a value near the quota is judged on the replacement size."""
        store = MemoryStore(quota_bytes=6)
        store.set("k", "12345")
        store.set("k", "54321")

        assert store.get("k") == "54321"


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        JsonFileStore(path).set("a", "1")

        assert JsonFileStore(path).get("a") == "1"

    def test_removals_survive_reopen(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        store.set("a", "1")
        store.set("b", "2")
        store.set("a", "3")
        store.remove("b")

        reopened = JsonFileStore(path)

        assert reopened.keys() == ["a"]
        assert reopened.get("a") == "3"
        assert reopened.size_bytes == 2

    def test_corrupt_line_is_skipped(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text('{"k": "a", "v": "1"}\n{broken\n[]\n{"k": "b", "v": "2"}\n', encoding="utf-8")

        assert JsonFileStore(path).keys() == ["a", "b"]

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{broken", encoding="utf-8")

        assert JsonFileStore(path).keys() == []

    def test_creates_parent_directory(self, tmp_path):
        store = JsonFileStore(tmp_path / "nested" / "store.json")
        store.set("a", "1")

        assert (tmp_path / "nested" / "store.json").exists()


class TestBuildStore:
    """Tests for build_store."""

    def test_quota_from_settings(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("SESSIONLOGS_BUFFER_QUOTA_BYTES", "2048")
        store = build_store()

        assert isinstance(store, MemoryStore)
        assert store.quota_bytes == 2048

    def test_file_backed_with_explicit_quota(self, mock_env_vars, tmp_path):
        store = build_store(tmp_path / "store.json", quota_bytes=10)

        assert isinstance(store, JsonFileStore)
        assert store.quota_bytes == 10


# =============================================================================
# Buffer
# =============================================================================


class TestLocalEventBuffer:
    """Tests for LocalEventBuffer."""

    def test_append_preserves_order(self):
        buffer = LocalEventBuffer(MemoryStore(), "sid")
        for i in range(5):
            buffer.append(EventCategory.INPUT, make_input(f"x{i}", float(i)))

        assert [e.name for e in buffer.read_all(EventCategory.INPUT)] == ["x0", "x1", "x2", "x3", "x4"]

    def test_categories_are_independent(self):
        buffer = LocalEventBuffer(MemoryStore(), "sid")
        buffer.append(EventCategory.INPUT, make_input("x", 1.0))
        buffer.append(EventCategory.ERROR, CapturedEvent(EventCategory.ERROR, "plot1", 2.0, ErrorPayload("bad")))

        assert len(buffer.read_all(EventCategory.INPUT)) == 1
        assert len(buffer.read_all(EventCategory.ERROR)) == 1
        assert buffer.read_all(EventCategory.OUTPUT) == ()
        assert len(buffer) == 2

    def test_read_all_is_a_snapshot(self):
        """Later appends do not change a snapshot already taken."""
        buffer = LocalEventBuffer(MemoryStore(), "sid")
        buffer.append(EventCategory.INPUT, make_input("x", 1.0))
        snapshot = buffer.read_all(EventCategory.INPUT)
        buffer.append(EventCategory.INPUT, make_input("y", 2.0))

        assert len(snapshot) == 1

    def test_restores_from_store(self):
        """A buffer rebuilt on the same store sees persisted entries."""
        store = MemoryStore()
        first = LocalEventBuffer(store, "sid")
        first.append(EventCategory.INPUT, make_input("x", 1.0, value=5))
        first.append(EventCategory.INPUT, make_input("y", 2.0))

        restored = LocalEventBuffer(store, "sid")

        assert restored.read_all(EventCategory.INPUT) == first.read_all(EventCategory.INPUT)

    def test_unreadable_length_restores_nothing(self):
        store = MemoryStore()
        store.set("sessionlogs:sid:input:length", "not-a-number")

        assert LocalEventBuffer(store, "sid").read_all(EventCategory.INPUT) == ()

    @pytest.mark.parametrize("corrupt", ["{broken", "5", '{"name": "b", "timestamp": "late"}'])
    def test_unreadable_entry_ends_restored_prefix(self, corrupt):
        """Entries before the damaged one are kept, later appends overwrite it."""
        store = MemoryStore()
        LocalEventBuffer(store, "sid").append(EventCategory.INPUT, make_input("a", 1.0))
        store.set("sessionlogs:sid:input:1", corrupt)
        store.set("sessionlogs:sid:input:length", "3")

        restored = LocalEventBuffer(store, "sid")
        restored.append(EventCategory.INPUT, make_input("c", 3.0))

        assert [e.name for e in restored.read_all(EventCategory.INPUT)] == ["a", "c"]
        assert [e.name for e in LocalEventBuffer(store, "sid").read_all(EventCategory.INPUT)] == ["a", "c"]

    def test_sessions_do_not_share_entries(self):
        store = MemoryStore()
        LocalEventBuffer(store, "one").append(EventCategory.INPUT, make_input("x", 1.0))

        assert len(LocalEventBuffer(store, "two")) == 0

    def test_one_entry_key_per_append(self):
        store = MemoryStore()
        buffer = LocalEventBuffer(store, "sid")
        buffer.append(EventCategory.INPUT, make_input("x", 1.0))
        buffer.append(EventCategory.INPUT, make_input("y", 2.0))

        assert store.get("sessionlogs:sid:input:length") == "2"
        assert json.loads(store.get("sessionlogs:sid:input:1"))["name"] == "y"

    def test_quota_exhaustion_degrades_to_memory(self):
        """The append that hits the quota succeeds in memory only."""
        store = MemoryStore()
        buffer = LocalEventBuffer(store, "sid")
        buffer.append(EventCategory.INPUT, make_input("a", 1.0))
        buffer.append(EventCategory.INPUT, make_input("b", 2.0))
        persisted = sum(len(k) + len(v) for k, v in ((k, store.get(k)) for k in store.keys()))
        store.quota_bytes = persisted + 10

        buffer.append(EventCategory.INPUT, make_input("c", 3.0))
        buffer.append(EventCategory.INPUT, make_input("d", 4.0))

        assert buffer.degraded is True
        assert [e.name for e in buffer.read_all(EventCategory.INPUT)] == ["a", "b", "c", "d"]
        restored = LocalEventBuffer(store, "sid")
        assert [e.name for e in restored.read_all(EventCategory.INPUT)] == ["a", "b"]

    def test_clear_removes_persisted_entries(self):
        store = MemoryStore()
        buffer = LocalEventBuffer(store, "sid")
        buffer.append(EventCategory.INPUT, make_input("x", 1.0))
        buffer.clear()

        assert len(buffer) == 0
        assert store.keys() == []
