"""Local event buffer - per-category append logs for one session.

Each category is an ordered, append-only sequence of CapturedEvent. Entries
are written to the client store one key per entry plus a length key, so an
append costs a constant number of store writes and a buffer rebuilt from the
same store (page reload) sees exactly the entries that were persisted.

When the store runs out of quota the buffer switches to memory-only mode for
the rest of the session: events keep being captured and delivered, but they
are no longer persisted.
"""

import json

import structlog

from sessionlogs.errors import StorageQuotaExceededError

from .models import CapturedEvent, EventCategory
from .store import KeyValueStore

logger = structlog.get_logger()


class LocalEventBuffer:
    """Session-scoped event buffer over a key-value store.

    Example:
        buffer = LocalEventBuffer(MemoryStore(), session_id="3f2a...")
        buffer.append(EventCategory.INPUT, event)
        snapshot = buffer.read_all(EventCategory.INPUT)
    """

    def __init__(self, store: KeyValueStore, session_id: str):
        """Initialize the buffer, restoring entries persisted for this session.

        Args:
            store: Client key-value store
            session_id: Session the buffer belongs to (namespaces the keys)
        """
        self.store = store
        self.session_id = session_id
        self.degraded = False
        self.log = logger.bind(component="event_buffer", session_id=session_id)

        self._events: dict[EventCategory, list[CapturedEvent]] = {
            category: self._load(category) for category in EventCategory
        }

    def _key(self, category: EventCategory, suffix: str | int) -> str:
        return f"sessionlogs:{self.session_id}:{category.value}:{suffix}"

    def _load(self, category: EventCategory) -> list[CapturedEvent]:
        raw_length = self.store.get(self._key(category, "length"))
        if raw_length is None:
            return []
        try:
            length = int(raw_length)
        except ValueError:
            self.log.warning("Persisted buffer length unreadable, starting empty", category=category.value)
            return []

        # Restore up to the first missing or unreadable entry
        events = []
        for index in range(length):
            raw = self.store.get(self._key(category, index))
            if raw is None:
                break
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise TypeError(f"entry is a {type(data).__name__}")
                events.append(CapturedEvent.from_dict(category, data))
            except (TypeError, ValueError) as e:
                self.log.warning(
                    "Persisted buffer entry unreadable, dropping the rest",
                    category=category.value,
                    index=index,
                    error=str(e),
                )
                break
        return events

    def append(self, category: EventCategory, event: CapturedEvent) -> None:
        """Append an event to a category.

        Never raises on quota exhaustion: the event stays in memory and the
        buffer stops persisting for the rest of the session.
        """
        category = EventCategory(category)
        events = self._events[category]
        events.append(event)

        if self.degraded:
            return

        index = len(events) - 1
        entry_key = self._key(category, index)
        try:
            self.store.set(entry_key, json.dumps(event.to_dict()))
            try:
                self.store.set(self._key(category, "length"), str(index + 1))
            except StorageQuotaExceededError:
                self.store.remove(entry_key)
                raise
        except StorageQuotaExceededError as e:
            self.degraded = True
            self.log.warning(
                "Client store quota exceeded, buffering in memory only",
                category=category.value,
                persisted=index,
                quota_bytes=e.quota,
            )

    def read_all(self, category: EventCategory) -> tuple[CapturedEvent, ...]:
        """Snapshot of a category at call time."""
        return tuple(self._events[EventCategory(category)])

    def __len__(self) -> int:
        return sum(len(events) for events in self._events.values())

    def clear(self) -> None:
        """Drop every entry of this session from memory and from the store."""
        for category, events in self._events.items():
            for index in range(len(events)):
                self.store.remove(self._key(category, index))
            self.store.remove(self._key(category, "length"))
            events.clear()
        self.log.debug("Buffer cleared")
