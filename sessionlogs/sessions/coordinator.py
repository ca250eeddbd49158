"""Session lifecycle coordinator - the server side of one tracked session.

STARTING -> ACTIVE -> ENDING -> CLOSED

- STARTING: `start()` fixes the session id and `connected_at`, resolves the
  user and returns the client configuration.
- ACTIVE: `receive()` stores the newest snapshot of each category, replacing
  the previous one.
- ENDING: `end()` stamps `disconnected_at` and builds the SessionRecord.
- CLOSED: the record is written once (unless the user is excluded) and
  dropped from memory. Storage failures are reported, never retried.
"""

from typing import Any, Callable, Iterable, Optional

import structlog

from sessionlogs.config import Settings
from sessionlogs.errors import ParseError, SessionStateError, StorageError, UserResolutionError
from sessionlogs.storage.base import StorageBackend, write_logs
from sessionlogs.tracking.channel import Priority
from sessionlogs.tracking.models import (
    BROWSER_DATA_CHANNEL,
    CATEGORY_PAYLOAD_KEYS,
    CHANNEL_CATEGORIES,
    LAST_EVENT_CHANNEL,
    DeliveryConfig,
    DeliveryMode,
    EventCategory,
)
from sessionlogs.utils.logging import LogContext, log_operation

from .identity import (
    SessionClock,
    SessionContext,
    UserResolver,
    call_resolver,
    default_user_resolver,
    session_id_from_timestamp,
)
from .models import SessionRecord, SessionState
from .parsers import parse_browser_data, parse_last_event, parse_log

logger = structlog.get_logger()

ErrorCallback = Callable[[Exception, Optional[SessionRecord]], None]


class SessionCoordinator:
    """Owns one session's record from connection to storage.

    Example:
        coordinator = SessionCoordinator(JsonStorage("./logs"), app_name="dashboard")
        config = coordinator.start(SessionContext(user="alice"))
        coordinator.receive(".sessionlogs_input", {"inputs": "[...]"})
        coordinator.end()
    """

    def __init__(
        self,
        storage: StorageBackend,
        app_name: str,
        user_resolver: Optional[UserResolver] = None,
        exclude_users: Iterable[str] = (),
        on_unload: bool = False,
        exclude_input_regex: Optional[str] = None,
        exclude_input_id: Iterable[str] = (),
        clock: Optional[SessionClock] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """Initialize the coordinator.

        Args:
            storage: Backend receiving the finished record
            app_name: Application name stored with the record
            user_resolver: Callable returning the user for a SessionContext
            exclude_users: Users whose sessions are never stored
            on_unload: Defer client pushes until the page closes
            exclude_input_regex: Regex of input names the client skips
            exclude_input_id: Input ids the client skips
            clock: Source of start timestamps
            on_error: Called with storage failures at session end

        Raises:
            TypeError: If user_resolver is not callable
        """
        if user_resolver is None:
            user_resolver = default_user_resolver()
        if not callable(user_resolver):
            raise TypeError("user_resolver must be a function")

        self.storage = storage
        self.app_name = app_name
        self.user_resolver = user_resolver
        self.exclude_users = frozenset(exclude_users)
        self.mode = DeliveryMode.DEFERRED if on_unload else DeliveryMode.INCREMENTAL
        self.exclude_input_regex = exclude_input_regex
        self.exclude_input_id = tuple(exclude_input_id)
        self.clock = clock or SessionClock()
        self.on_error = on_error

        self.state = SessionState.STARTING
        self.session_id: Optional[str] = None
        self.user: Optional[str] = None
        self.config: Optional[DeliveryConfig] = None
        self.connected_at = None
        self.stored = False
        self.last_event: Optional[dict] = None

        self._snapshots: dict[EventCategory, list[dict]] = {category: [] for category in EventCategory}
        self._browser_info: dict[str, str] = {}
        self.log = logger.bind(component="session_coordinator", app=app_name)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: StorageBackend,
        user_resolver: Optional[UserResolver] = None,
        **kwargs: Any,
    ) -> "SessionCoordinator":
        """Create a coordinator configured from Settings."""
        return cls(
            storage=storage,
            app_name=settings.app_name,
            user_resolver=user_resolver or default_user_resolver(
                env_var=settings.user_env_var,
                default_user=settings.default_user,
            ),
            exclude_users=settings.exclude_users,
            on_unload=settings.on_unload,
            exclude_input_regex=settings.exclude_input_regex,
            exclude_input_id=settings.exclude_input_id,
            **kwargs,
        )

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"Session is {self.state.value}, expected {allowed}")

    def start(self, context: Optional[SessionContext] = None) -> DeliveryConfig:
        """Establish the session and return the client configuration.

        Raises:
            UserResolutionError: If the user cannot be resolved
            SessionStateError: If the session was already started
        """
        self._require(SessionState.STARTING)
        context = context or SessionContext()

        start_ns = self.clock.start_ns()
        session_id = session_id_from_timestamp(start_ns)
        try:
            user = call_resolver(self.user_resolver, context)
        except UserResolutionError:
            self.log.error("User resolution failed, session not tracked", exc_info=True)
            raise

        self.session_id = session_id
        self.user = user
        self.connected_at = self.clock.now()
        self.config = DeliveryConfig(
            session_id=session_id,
            mode=self.mode,
            exclude_input_regex=self.exclude_input_regex,
            exclude_input_id=self.exclude_input_id,
        )
        self.log = self.log.bind(session_id=session_id)
        self.state = SessionState.ACTIVE
        self.log.info("Session started", user=user, mode=self.mode.value)
        return self.config

    def receive(self, identifier: str, payload: Any, priority: Priority = Priority.VALUE) -> None:
        """Accept a push from the client channel.

        Category snapshots replace the stored snapshot wholesale, so
        receiving the same snapshot twice changes nothing.

        Raises:
            SessionStateError: If the session is not active
            ParseError: If the payload cannot be decoded
        """
        self._require(SessionState.ACTIVE)

        category = CHANNEL_CATEGORIES.get(identifier)
        if category is not None:
            events = parse_log(payload, CATEGORY_PAYLOAD_KEYS[category])
            self._snapshots[category] = events
            self.log.debug("Snapshot received", category=category.value, events=len(events))
        elif identifier == LAST_EVENT_CHANNEL:
            self.last_event = parse_last_event(payload)
        elif identifier == BROWSER_DATA_CHANNEL:
            self._browser_info = parse_browser_data(payload)
        else:
            raise ParseError(f"Unknown channel identifier {identifier!r}")

    def snapshot(self, category: EventCategory) -> list[dict]:
        """Latest snapshot received for a category."""
        return list(self._snapshots[EventCategory(category)])

    def end(self, browser_data: Any = None) -> Optional[SessionRecord]:
        """Close the session and hand the record to storage.

        Ending an already ended session does nothing, so the record is
        written at most once.

        Args:
            browser_data: Browser descriptor, if not pushed over the channel.
                An unreadable descriptor is logged and the one pushed over
                the channel is kept.

        Returns:
            The finished record, or None if the session was already ended
        """
        if self.state in (SessionState.ENDING, SessionState.CLOSED):
            self.log.debug("Session already ended")
            return None
        self._require(SessionState.ACTIVE)

        if browser_data is not None:
            try:
                self._browser_info = parse_browser_data(browser_data)
            except ParseError as e:
                self.log.warning("Browser data at session end ignored", error=str(e))

        self.state = SessionState.ENDING

        record = SessionRecord(
            app=self.app_name,
            user=self.user,
            session_id=self.session_id,
            connected_at=self.connected_at,
            disconnected_at=self.clock.now(),
            browser_info=dict(self._browser_info),
            inputs=self.snapshot(EventCategory.INPUT),
            errors=self.snapshot(EventCategory.ERROR),
            outputs=self.snapshot(EventCategory.OUTPUT),
        )
        self._close(record)
        return record

    def _close(self, record: SessionRecord) -> None:
        try:
            if record.user in self.exclude_users:
                self.log.info("Session not stored, user excluded", user=record.user)
                return

            with LogContext(session_id=record.session_id):
                try:
                    with log_operation("write_session", logger=self.log, storage=self.storage.name) as op:
                        write_logs(self.storage, record)
                        op["events"] = record.event_count
                except StorageError as e:
                    self._report(e, record)
                    return
            self.stored = True
        finally:
            self.state = SessionState.CLOSED
            self._snapshots = {category: [] for category in EventCategory}
            self._browser_info = {}
            self.last_event = None

    def _report(self, error: Exception, record: SessionRecord) -> None:
        if self.on_error is not None:
            self.on_error(error, record)
        else:
            self.log.error("Session lost, storage failed", error=str(error), events=record.event_count)
