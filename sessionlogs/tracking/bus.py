"""In-process notification bus standing in for the host application's events.

Handlers are registered per notification kind and receive the raw
notification mapping. Registration returns a Subscription that releases the
handler when cancelled.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, Mapping

import structlog

from .models import NotificationKind

logger = structlog.get_logger()

Notification = Mapping[str, Any]
Handler = Callable[[Notification], None]


class Subscription:
    """Cancellation handle for a bus registration."""

    def __init__(self, bus: "NotificationBus", kind: NotificationKind, handler: Handler):
        self._bus = bus
        self.kind = kind
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        """Release the handler. Safe to call more than once."""
        if self.active:
            self._bus._remove(self.kind, self.handler)
            self.active = False


class NotificationBus:
    """Synchronous pub/sub keyed by notification kind."""

    def __init__(self):
        self._handlers: dict[NotificationKind, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, kind: NotificationKind, handler: Handler) -> Subscription:
        """Register handler for one notification kind."""
        kind = NotificationKind(kind)
        with self._lock:
            self._handlers[kind].append(handler)
        return Subscription(self, kind, handler)

    def _remove(self, kind: NotificationKind, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers[kind]
            if handler in handlers:
                handlers.remove(handler)

    def handler_count(self, kind: NotificationKind) -> int:
        """Number of handlers registered for kind."""
        with self._lock:
            return len(self._handlers[NotificationKind(kind)])

    def emit(self, kind: NotificationKind, notification: Notification) -> None:
        """Deliver a notification to every handler of its kind.

        A failing handler is logged and never breaks the emitter.
        """
        with self._lock:
            handlers = list(self._handlers[NotificationKind(kind)])
        for handler in handlers:
            try:
                handler(notification)
            except Exception:
                logger.exception("Notification handler failed", kind=NotificationKind(kind).value)
