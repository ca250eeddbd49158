"""Tests for the capture adapter."""

import json

import pytest

from sessionlogs.tracking.buffer import LocalEventBuffer
from sessionlogs.tracking.bus import NotificationBus
from sessionlogs.tracking.capture import CaptureAdapter
from sessionlogs.tracking.channel import Priority
from sessionlogs.tracking.delivery import DeliveryController
from sessionlogs.tracking.models import (
    ERROR_CHANNEL,
    INPUT_CHANNEL,
    LAST_EVENT_CHANNEL,
    CapturedEvent,
    DeliveryConfig,
    EventCategory,
    InputPayload,
    NotificationKind,
)
from sessionlogs.tracking.store import MemoryStore


@pytest.fixture
def make_adapter(recording_channel):
    """Build an attached adapter for a configuration."""

    def _make(**config_kwargs):
        config = DeliveryConfig(session_id="sid", **config_kwargs)
        bus = NotificationBus()
        buffer = LocalEventBuffer(MemoryStore(), config.session_id)
        controller = DeliveryController(buffer, recording_channel, config)
        adapter = CaptureAdapter(bus, buffer, controller, config).attach()
        return bus, buffer, adapter

    return _make


class TestAttach:
    """Tests for subscription handling."""

    def test_attach_subscribes_each_kind_once(self, make_adapter):
        bus, _, adapter = make_adapter()
        adapter.attach()

        for kind in NotificationKind:
            assert bus.handler_count(kind) == 1

    def test_detach_releases_subscriptions(self, make_adapter):
        bus, buffer, adapter = make_adapter()
        adapter.detach()
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "x", "value": 1})

        assert adapter.attached is False
        assert len(buffer) == 0


class TestCapture:
    """Tests for event normalization."""

    def test_input_change_is_buffered_and_pushed(self, make_adapter, recording_channel):
        """Input x changed to 5 at t=100 reaches the channel as a snapshot and a last event."""
        bus, buffer, _ = make_adapter()
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "x", "timestamp": 100, "value": 5, "kind": "text"})

        assert buffer.read_all(EventCategory.INPUT) == (
            CapturedEvent(EventCategory.INPUT, "x", 100.0, InputPayload(value=5, input_kind="text")),
        )
        snapshot = json.loads(recording_channel.pushes_to(INPUT_CHANNEL)[-1]["inputs"])
        assert snapshot == [{"name": "x", "timestamp": 100, "value": 5, "type": "text"}]
        last = recording_channel.pushes_to(LAST_EVENT_CHANNEL)[-1]
        assert last["name"] == "x"
        assert last["category"] == "input"

    def test_error_is_captured(self, make_adapter, recording_channel):
        """A rendering error on plot1 lands in the error snapshot."""
        bus, buffer, _ = make_adapter()
        bus.emit(NotificationKind.ERROR, {"name": "plot1", "timestamp": 5, "error": {"message": "bad"}})

        assert buffer.read_all(EventCategory.ERROR)[0].payload.message == "bad"
        pushed = json.loads(recording_channel.pushes_to(ERROR_CHANNEL)[-1]["errors"])
        assert pushed == [{"name": "plot1", "timestamp": 5, "error": "bad"}]

    def test_output_binding_is_captured(self, make_adapter):
        bus, buffer, _ = make_adapter()
        bus.emit(NotificationKind.VALUE, {"name": "table", "timestamp": 5, "binding": {"name": "shiny.datatableOutput"}})

        assert buffer.read_all(EventCategory.OUTPUT)[0].payload.binding_name == "shiny.datatableOutput"

    def test_missing_timestamp_uses_clock(self, make_adapter):
        bus, buffer, _ = make_adapter()
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "x", "value": 1})

        assert buffer.read_all(EventCategory.INPUT)[0].timestamp > 0

    def test_notification_without_name_ignored(self, make_adapter):
        bus, buffer, adapter = make_adapter()
        bus.emit(NotificationKind.INPUT_CHANGED, {"value": 1})

        assert len(buffer) == 0
        assert adapter.captured == 0

    def test_timestamps_strictly_increase(self, make_adapter):
        """Events sharing a clock tick keep their arrival order."""
        bus, buffer, _ = make_adapter()
        for value in range(3):
            bus.emit(NotificationKind.INPUT_CHANGED, {"name": "x", "timestamp": 100, "value": value})

        timestamps = [e.timestamp for e in buffer.read_all(EventCategory.INPUT)]
        assert timestamps[0] == 100.0
        assert timestamps[0] < timestamps[1] < timestamps[2]


class TestExclusions:
    """Tests for capture filters."""

    def test_excluded_id(self, make_adapter):
        bus, buffer, adapter = make_adapter(exclude_input_id=("password",))
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "password", "value": "hunter2"})

        assert len(buffer) == 0
        assert adapter.rejected == 1

    def test_excluded_regex(self, make_adapter):
        bus, buffer, _ = make_adapter(exclude_input_regex="^tmp_")
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "tmp_scroll", "value": 1})
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "keep_tmp_", "value": 1})

        assert [e.name for e in buffer.read_all(EventCategory.INPUT)] == ["keep_tmp_"]

    def test_hidden_inputs_skipped(self, make_adapter):
        bus, buffer, _ = make_adapter()
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "plot1_hidden", "value": True})

        assert len(buffer) == 0

    def test_internal_channels_never_captured(self, make_adapter):
        """The client's own traffic is not captured again."""
        bus, buffer, _ = make_adapter()
        for name in (INPUT_CHANNEL, ".sessionlogs_lastevent", LAST_EVENT_CHANNEL):
            bus.emit(NotificationKind.INPUT_CHANGED, {"name": name, "value": 1})
        bus.emit(NotificationKind.VALUE, {"name": ERROR_CHANNEL, "binding": {"name": "b"}})

        assert len(buffer) == 0

    def test_input_filters_do_not_apply_to_outputs(self, make_adapter):
        bus, buffer, _ = make_adapter(exclude_input_id=("table",))
        bus.emit(NotificationKind.VALUE, {"name": "table", "binding": {"name": "b"}})

        assert len(buffer.read_all(EventCategory.OUTPUT)) == 1


class TestPriorities:
    """Tests for push priorities."""

    def test_input_snapshot_is_event_priority(self, make_adapter, recording_channel):
        bus, _, _ = make_adapter()
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "x", "value": 1})

        priorities = {name: priority for name, _, priority in recording_channel.pushes}
        assert priorities[INPUT_CHANNEL] == Priority.EVENT
        assert priorities[LAST_EVENT_CHANNEL] == Priority.EVENT

    def test_error_snapshot_is_value_priority(self, make_adapter, recording_channel):
        bus, _, _ = make_adapter()
        bus.emit(NotificationKind.ERROR, {"name": "plot1", "error": {"message": "bad"}})

        priorities = {name: priority for name, _, priority in recording_channel.pushes}
        assert priorities[ERROR_CHANNEL] == Priority.VALUE


class TestQuotaExhaustion:
    """Tests for capture once the client store is full."""

    def test_event_past_quota_is_delivered_but_not_persisted(self, recording_channel):
        """The third event still reaches the channel but not a rebuilt buffer."""
        store = MemoryStore()
        config = DeliveryConfig(session_id="sid")
        bus = NotificationBus()
        buffer = LocalEventBuffer(store, config.session_id)
        controller = DeliveryController(buffer, recording_channel, config)
        CaptureAdapter(bus, buffer, controller, config).attach()

        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "a", "timestamp": 1, "value": 1})
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "b", "timestamp": 2, "value": 2})
        store.quota_bytes = store.size_bytes
        bus.emit(NotificationKind.INPUT_CHANGED, {"name": "c", "timestamp": 3, "value": 3})

        assert buffer.degraded is True
        snapshot = json.loads(recording_channel.pushes_to(INPUT_CHANNEL)[-1]["inputs"])
        assert [e["name"] for e in snapshot] == ["a", "b", "c"]
        assert recording_channel.pushes_to(LAST_EVENT_CHANNEL)[-1]["name"] == "c"
        rebuilt = LocalEventBuffer(store, config.session_id)
        assert [e.name for e in rebuilt.read_all(EventCategory.INPUT)] == ["a", "b"]
