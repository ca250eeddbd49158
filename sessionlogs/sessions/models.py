"""Server-side session models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    """Coordinator lifecycle states."""

    STARTING = "starting"
    ACTIVE = "active"
    ENDING = "ending"
    CLOSED = "closed"


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a session boundary timestamp."""
    return value.isoformat() if value is not None else None


@dataclass
class SessionRecord:
    """Everything stored for one finished session."""

    app: str
    user: str
    session_id: str
    connected_at: datetime
    disconnected_at: Optional[datetime] = None
    browser_info: dict[str, str] = field(default_factory=dict)
    inputs: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    outputs: list[dict] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.disconnected_at is None:
            return None
        return (self.disconnected_at - self.connected_at).total_seconds()

    @property
    def event_count(self) -> int:
        return len(self.inputs) + len(self.errors) + len(self.outputs)

    def session_row(self) -> dict:
        """Flat session metadata merged with the browser descriptor."""
        row = {
            "app": self.app,
            "user": self.user,
            "server_connected": format_timestamp(self.connected_at),
            "sessionid": self.session_id,
            "server_disconnected": format_timestamp(self.disconnected_at),
        }
        for key, value in self.browser_info.items():
            row.setdefault(key, value)
        return row

    def to_dict(self) -> dict:
        """Convert to the JSON document written by storage backends."""
        return {
            "session": self.session_row(),
            "inputs": [dict(event) for event in self.inputs],
            "errors": [dict(event) for event in self.errors],
            "outputs": [dict(event) for event in self.outputs],
        }
