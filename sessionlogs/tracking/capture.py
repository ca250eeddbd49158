"""Capture adapter - turns host notifications into buffered events."""

import math
import re
import time
from typing import Any, Mapping, Optional

import structlog

from .buffer import LocalEventBuffer
from .bus import NotificationBus, Subscription
from .delivery import DeliveryController
from .models import (
    INTERNAL_CHANNELS,
    CapturedEvent,
    DeliveryConfig,
    ErrorPayload,
    EventCategory,
    InputPayload,
    NotificationKind,
    OutputPayload,
)

logger = structlog.get_logger()

# Host framework bookkeeping inputs, not user actions
HIDDEN_INPUT = re.compile(r"hidden$")

NOTIFICATION_CATEGORIES = {
    NotificationKind.INPUT_CHANGED: EventCategory.INPUT,
    NotificationKind.ERROR: EventCategory.ERROR,
    NotificationKind.VALUE: EventCategory.OUTPUT,
}


class CaptureAdapter:
    """Subscribes to host notifications, filters and normalizes them.

    Example:
        adapter = CaptureAdapter(bus, buffer, controller, config)
        adapter.attach()
        ...
        adapter.detach()
    """

    def __init__(
        self,
        bus: NotificationBus,
        buffer: LocalEventBuffer,
        controller: DeliveryController,
        config: DeliveryConfig,
    ):
        self.bus = bus
        self.buffer = buffer
        self.controller = controller
        self.exclude_ids = frozenset(config.exclude_input_id)
        self.exclude_pattern = config.exclude_pattern
        self.captured = 0
        self.rejected = 0
        self.log = logger.bind(component="capture_adapter", session_id=config.session_id)

        self._subscriptions: list[Subscription] = []
        self._last_timestamps: dict[EventCategory, float] = {
            category: events[-1].timestamp if events else -math.inf
            for category, events in ((c, buffer.read_all(c)) for c in EventCategory)
        }

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    def attach(self) -> "CaptureAdapter":
        """Subscribe to the three notification kinds. Idempotent."""
        if not self._subscriptions:
            self._subscriptions = [
                self.bus.subscribe(NotificationKind.INPUT_CHANGED, self.on_input_changed),
                self.bus.subscribe(NotificationKind.ERROR, self.on_error),
                self.bus.subscribe(NotificationKind.VALUE, self.on_value),
            ]
        return self

    def detach(self) -> None:
        """Release every subscription."""
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    def is_excluded(self, kind: NotificationKind, name: str) -> bool:
        """Whether a notification must be skipped."""
        if name in INTERNAL_CHANNELS:
            return True
        if NotificationKind(kind) != NotificationKind.INPUT_CHANGED:
            return False
        if name in self.exclude_ids:
            return True
        if self.exclude_pattern is not None and self.exclude_pattern.search(name):
            return True
        return HIDDEN_INPUT.search(name) is not None

    def on_input_changed(self, notification: Mapping[str, Any]) -> Optional[CapturedEvent]:
        """Handle an input change `{name, timestamp, value, kind}`."""
        payload = InputPayload(
            value=notification.get("value"),
            input_kind=notification.get("kind") or "",
        )
        return self._capture(NotificationKind.INPUT_CHANGED, notification, payload)

    def on_error(self, notification: Mapping[str, Any]) -> Optional[CapturedEvent]:
        """Handle a rendering error `{name, timestamp, error: {message}}`."""
        error = notification.get("error")
        message = error.get("message", "") if isinstance(error, Mapping) else str(error or "")
        return self._capture(NotificationKind.ERROR, notification, ErrorPayload(message=message))

    def on_value(self, notification: Mapping[str, Any]) -> Optional[CapturedEvent]:
        """Handle an output update `{name, timestamp, binding: {name}}`."""
        binding = notification.get("binding")
        binding_name = binding.get("name", "") if isinstance(binding, Mapping) else str(binding or "")
        return self._capture(NotificationKind.VALUE, notification, OutputPayload(binding_name=binding_name))

    def _capture(self, kind: NotificationKind, notification: Mapping[str, Any], payload) -> Optional[CapturedEvent]:
        name = notification.get("name")
        if not name:
            self.log.warning("Notification without a name ignored", kind=kind.value)
            return None

        if self.is_excluded(kind, name):
            self.rejected += 1
            self.log.debug("Notification not tracked", kind=kind.value, name=name)
            return None

        category = NOTIFICATION_CATEGORIES[kind]
        event = CapturedEvent(
            category=category,
            name=name,
            timestamp=self._next_timestamp(category, notification.get("timestamp")),
            payload=payload,
        )
        self.buffer.append(category, event)
        self.captured += 1
        self.controller.on_captured(category, event)
        return event

    def _next_timestamp(self, category: EventCategory, timestamp: Optional[float]) -> float:
        """Keep timestamps strictly increasing within a category."""
        if timestamp is None:
            timestamp = time.time() * 1000
        timestamp = float(timestamp)
        last = self._last_timestamps[category]
        if timestamp <= last:
            timestamp = math.nextafter(last, math.inf)
        self._last_timestamps[category] = timestamp
        return timestamp
