"""Delivery controller - decides when buffered events cross the channel.

Two modes, fixed for the session:

INCREMENTAL
    Every captured event triggers a push of the *whole* snapshot of its
    category, plus the newest event alone under the last-event identifier.
    Each snapshot push replaces the previous one on the receiving side, so a
    lost or reordered push is repaired by the next one.

DEFERRED
    Nothing is pushed while the session runs. A single before-unload hook
    pushes each category snapshot once when the page starts closing and asks
    the user to confirm leaving. This final flush is best effort only: if the
    runtime skips the hook or cuts it short, the session's events are lost.
"""

import json
from typing import Optional

import structlog

from sessionlogs.errors import ChannelError

from .buffer import LocalEventBuffer
from .channel import Channel, Priority
from .lifecycle import PageLifecycle, UnloadHook
from .models import (
    CATEGORY_CHANNELS,
    CATEGORY_PAYLOAD_KEYS,
    LAST_EVENT_CHANNEL,
    CapturedEvent,
    DeliveryConfig,
    DeliveryMode,
    EventCategory,
)

logger = structlog.get_logger()

UNLOAD_PROMPT = "Are you sure?"

# Input snapshots must reach the server even when identical to the last push
SNAPSHOT_PRIORITIES = {
    EventCategory.INPUT: Priority.EVENT,
    EventCategory.ERROR: Priority.VALUE,
    EventCategory.OUTPUT: Priority.VALUE,
}


def serialize_snapshot(category: EventCategory, events: tuple[CapturedEvent, ...]) -> dict:
    """Build the channel payload for a category snapshot."""
    return {CATEGORY_PAYLOAD_KEYS[category]: json.dumps([event.to_dict() for event in events])}


class DeliveryController:
    """Pushes buffered events over the channel according to the session mode."""

    def __init__(self, buffer: LocalEventBuffer, channel: Channel, config: DeliveryConfig):
        """Initialize the controller.

        Args:
            buffer: Session buffer to read snapshots from
            channel: Outbound channel to the coordinator
            config: Session configuration (fixes the delivery mode)
        """
        self.buffer = buffer
        self.channel = channel
        self.mode = config.mode
        self.failed_pushes = 0
        self._unload_hook: Optional[UnloadHook] = None
        self.log = logger.bind(component="delivery_controller", session_id=config.session_id, mode=self.mode.value)

    def on_captured(self, category: EventCategory, event: CapturedEvent) -> None:
        """Entry point called by the capture adapter after each append."""
        if self.mode == DeliveryMode.DEFERRED:
            return

        self.push_snapshot(category)
        last_event = dict(event.to_dict(), category=event.category.value)
        self._push(LAST_EVENT_CHANNEL, last_event, Priority.EVENT)

    def push_snapshot(self, category: EventCategory) -> bool:
        """Push the current snapshot of one category, empty or not."""
        category = EventCategory(category)
        payload = serialize_snapshot(category, self.buffer.read_all(category))
        return self._push(CATEGORY_CHANNELS[category], payload, SNAPSHOT_PRIORITIES[category])

    def flush(self) -> int:
        """Push every category snapshot once.

        Returns:
            Number of categories pushed successfully
        """
        return sum(1 for category in EventCategory if self.push_snapshot(category))

    def install_termination_hook(self, lifecycle: PageLifecycle) -> Optional[UnloadHook]:
        """Register the final flush on the page's before-unload signal.

        Only used in deferred mode; installing twice keeps the first hook.
        The flush runs only if the runtime delivers the signal, so it offers
        no delivery guarantee.
        """
        if self.mode != DeliveryMode.DEFERRED:
            return None
        if self._unload_hook is None:
            self._unload_hook = lifecycle.on_before_unload(self._on_before_unload)
            self.log.debug("Termination hook installed")
        return self._unload_hook

    def _on_before_unload(self) -> str:
        pushed = self.flush()
        self.log.info("Final flush on page close", categories_pushed=pushed, events=len(self.buffer))
        return UNLOAD_PROMPT

    def close(self) -> None:
        """Remove the termination hook, if installed."""
        if self._unload_hook is not None:
            self._unload_hook.cancel()
            self._unload_hook = None

    def _push(self, identifier: str, payload: dict, priority: Priority) -> bool:
        try:
            self.channel.publish(identifier, payload, priority=priority)
        except ChannelError as e:
            self.failed_pushes += 1
            self.log.warning("Push failed, not retried", identifier=identifier, error=str(e))
            return False
        return True
