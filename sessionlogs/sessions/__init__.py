"""Server side of session tracking: identity, parsing and lifecycle."""

from .models import SessionRecord, SessionState, format_timestamp
from .identity import (
    DEFAULT_USER_ENV_VAR,
    SessionClock,
    SessionContext,
    UserResolver,
    call_resolver,
    default_user_resolver,
    resolve_user,
    session_id_from_timestamp,
)
from .parsers import ms_to_datetime, parse_browser_data, parse_last_event, parse_log
from .coordinator import SessionCoordinator

__all__ = [
    # Models
    "SessionRecord",
    "SessionState",
    "format_timestamp",
    # Identity
    "DEFAULT_USER_ENV_VAR",
    "SessionClock",
    "SessionContext",
    "UserResolver",
    "call_resolver",
    "default_user_resolver",
    "resolve_user",
    "session_id_from_timestamp",
    # Parsers
    "ms_to_datetime",
    "parse_browser_data",
    "parse_last_event",
    "parse_log",
    # Lifecycle
    "SessionCoordinator",
]
