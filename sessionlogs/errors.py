"""Exception hierarchy for session tracking.

Capture-filter rejections are not errors and have no class here.
"""


class SessionLogsError(Exception):
    """Base error for everything raised by sessionlogs."""


class ConfigurationError(SessionLogsError):
    """The client configuration payload is missing or malformed."""


class StorageQuotaExceededError(SessionLogsError):
    """The client key-value store refused a write because it is full."""

    def __init__(self, key: str, size: int, quota: int):
        self.key = key
        self.size = size
        self.quota = quota
        super().__init__(f"Writing {key!r} needs {size} bytes, quota is {quota} bytes")


class ChannelError(SessionLogsError):
    """A push over the outbound channel failed."""


class ParseError(SessionLogsError):
    """An inbound channel payload could not be decoded."""


class StorageError(SessionLogsError):
    """A storage backend failed to persist a session record."""


class UserResolutionError(SessionLogsError):
    """The user resolver raised or returned something unusable."""


class SessionStateError(SessionLogsError):
    """An operation was attempted in the wrong lifecycle state."""
