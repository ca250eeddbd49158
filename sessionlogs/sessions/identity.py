"""Session identity and user resolution."""

import getpass
import hashlib
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from sessionlogs.errors import UserResolutionError

DEFAULT_USER_ENV_VAR = "SHINYPROXY_USERNAME"


def session_id_from_timestamp(start_ns: int) -> str:
    """Derive the session id from a nanosecond start timestamp.

    Pure and deterministic: the same timestamp always yields the same id, so
    client and server can agree on it without a round trip.
    """
    return hashlib.sha256(str(int(start_ns)).encode("utf-8")).hexdigest()


class SessionClock:
    """Wall clock handing out strictly increasing nanosecond start times.

    Two sessions started within the same clock tick still get distinct
    timestamps, and therefore distinct ids.
    """

    def __init__(self):
        self._last_ns = 0
        self._lock = threading.Lock()

    def start_ns(self) -> int:
        with self._lock:
            now = max(time.time_ns(), self._last_ns + 1)
            self._last_ns = now
            return now

    def now(self) -> datetime:
        return datetime.now(UTC)


@dataclass
class SessionContext:
    """What the host knows about the connecting session."""

    user: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


UserResolver = Callable[[SessionContext], str]


def resolve_user(
    context: SessionContext,
    env_var: str = DEFAULT_USER_ENV_VAR,
    default_user: Optional[str] = None,
) -> str:
    """Resolve the session user.

    Precedence: session-provided user, deployment environment variable,
    configured default, operating system user.
    """
    if context.user:
        return context.user
    env_user = os.environ.get(env_var, "")
    if env_user:
        return env_user
    if default_user:
        return default_user
    return getpass.getuser()


def default_user_resolver(
    env_var: str = DEFAULT_USER_ENV_VAR,
    default_user: Optional[str] = None,
) -> UserResolver:
    """Build the default resolver bound to a deployment configuration."""

    def resolver(context: SessionContext) -> str:
        return resolve_user(context, env_var=env_var, default_user=default_user)

    return resolver


def call_resolver(resolver: UserResolver, context: SessionContext) -> str:
    """Run a user resolver, turning any failure into UserResolutionError.

    Raises:
        UserResolutionError: If the resolver raises or returns no usable name
    """
    try:
        user = resolver(context)
    except Exception as e:
        raise UserResolutionError(f"User resolver failed: {e}") from e
    if not isinstance(user, str) or not user:
        raise UserResolutionError(f"User resolver must return a non-empty string, got {user!r}")
    return user
