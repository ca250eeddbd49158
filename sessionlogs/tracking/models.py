"""Data models for captured session events."""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from sessionlogs.errors import ConfigurationError


class EventCategory(str, Enum):
    """Buffer categories, one append log each."""

    INPUT = "input"
    ERROR = "error"
    OUTPUT = "output"


class NotificationKind(str, Enum):
    """Notification types emitted by the host application."""

    INPUT_CHANGED = "inputchanged"
    ERROR = "error"
    VALUE = "value"


class DeliveryMode(str, Enum):
    """How captured events reach the server."""

    INCREMENTAL = "incremental"
    DEFERRED = "deferred"


# Channel identifiers
INPUT_CHANNEL = ".sessionlogs_input"
ERROR_CHANNEL = ".sessionlogs_error"
OUTPUT_CHANNEL = ".sessionlogs_output"
LAST_EVENT_CHANNEL = ".sessionlogs_lastEvent"
BROWSER_DATA_CHANNEL = ".sessionlogs_browserData"

CATEGORY_CHANNELS = {
    EventCategory.INPUT: INPUT_CHANNEL,
    EventCategory.ERROR: ERROR_CHANNEL,
    EventCategory.OUTPUT: OUTPUT_CHANNEL,
}

CATEGORY_PAYLOAD_KEYS = {
    EventCategory.INPUT: "inputs",
    EventCategory.ERROR: "errors",
    EventCategory.OUTPUT: "outputs",
}

CHANNEL_CATEGORIES = {channel: category for category, channel in CATEGORY_CHANNELS.items()}

# The client's own traffic must never be captured again
INTERNAL_CHANNELS = frozenset({
    INPUT_CHANNEL,
    ERROR_CHANNEL,
    OUTPUT_CHANNEL,
    LAST_EVENT_CHANNEL,
    LAST_EVENT_CHANNEL.lower(),
    BROWSER_DATA_CHANNEL,
})


@dataclass(frozen=True)
class InputPayload:
    """Payload of an input change."""

    value: Any = None
    input_kind: str = ""


@dataclass(frozen=True)
class ErrorPayload:
    """Payload of a rendering error."""

    message: str = ""


@dataclass(frozen=True)
class OutputPayload:
    """Payload of a recomputed output."""

    binding_name: str = ""


EventPayload = Union[InputPayload, ErrorPayload, OutputPayload]


@dataclass(frozen=True)
class CapturedEvent:
    """A single normalized event held in the local buffer."""

    category: EventCategory
    name: str
    timestamp: float  # epoch milliseconds
    payload: EventPayload

    def to_dict(self) -> dict:
        """Convert to the wire format carried by the channel."""
        data = {"name": self.name, "timestamp": self.timestamp}
        if self.category == EventCategory.INPUT:
            data["value"] = self.payload.value
            data["type"] = self.payload.input_kind
        elif self.category == EventCategory.ERROR:
            data["error"] = self.payload.message
        else:
            data["binding"] = self.payload.binding_name
        return data

    @classmethod
    def from_dict(cls, category: EventCategory, data: Mapping) -> "CapturedEvent":
        """Create a CapturedEvent from its wire format."""
        category = EventCategory(category)
        if category == EventCategory.INPUT:
            payload = InputPayload(value=data.get("value"), input_kind=data.get("type") or "")
        elif category == EventCategory.ERROR:
            payload = ErrorPayload(message=data.get("error") or "")
        else:
            payload = OutputPayload(binding_name=data.get("binding") or "")

        return cls(
            category=category,
            name=data.get("name", ""),
            timestamp=float(data.get("timestamp", 0)),
            payload=payload,
        )


@dataclass(frozen=True)
class DeliveryConfig:
    """Client configuration, fixed for the whole session.

    Rendered into the page as a JSON document and parsed back by the client.
    """

    session_id: str
    mode: DeliveryMode = DeliveryMode.INCREMENTAL
    exclude_input_regex: Optional[str] = None
    exclude_input_id: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.session_id:
            raise ConfigurationError("Configuration has no session id")
        if not all(isinstance(i, str) for i in self.exclude_input_id):
            raise ConfigurationError(f"exclude_input_id must hold strings, got {self.exclude_input_id!r}")
        if self.exclude_input_regex is not None:
            if not isinstance(self.exclude_input_regex, str):
                raise ConfigurationError(
                    f"exclude_input_regex must be a string, got {type(self.exclude_input_regex).__name__}"
                )
            try:
                re.compile(self.exclude_input_regex)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid exclude_input_regex {self.exclude_input_regex!r}: {e}"
                ) from e

    @property
    def on_unload(self) -> bool:
        """Whether pushes are deferred until the page closes."""
        return self.mode == DeliveryMode.DEFERRED

    @property
    def exclude_pattern(self) -> Optional[re.Pattern]:
        """Compiled exclusion regex, if any."""
        if self.exclude_input_regex is None:
            return None
        return re.compile(self.exclude_input_regex)

    def to_payload(self) -> dict:
        """Convert to the page payload, dropping unset fields."""
        payload: dict[str, Any] = {"logsonunload": self.on_unload}
        if self.exclude_input_regex is not None:
            payload["exclude_input_regex"] = self.exclude_input_regex
        if self.exclude_input_id:
            payload["exclude_input_id"] = list(self.exclude_input_id)
        payload["sessionid"] = self.session_id
        return payload

    def to_json(self) -> str:
        """Serialize the page payload."""
        return json.dumps(self.to_payload())

    @classmethod
    def from_payload(cls, payload: Mapping) -> "DeliveryConfig":
        """Create a DeliveryConfig from the page payload.

        Raises:
            ConfigurationError: If the payload is not a mapping or misses fields
        """
        if not isinstance(payload, Mapping):
            raise ConfigurationError(f"Configuration payload must be an object, got {type(payload).__name__}")
        if "sessionid" not in payload:
            raise ConfigurationError("Configuration payload has no 'sessionid'")

        logsonunload = payload.get("logsonunload", False)
        if not isinstance(logsonunload, bool):
            raise ConfigurationError("'logsonunload' must be a boolean")

        exclude_ids = payload.get("exclude_input_id") or ()
        if isinstance(exclude_ids, str):
            exclude_ids = (exclude_ids,)
        if not isinstance(exclude_ids, (list, tuple)):
            raise ConfigurationError(
                f"'exclude_input_id' must be a list of strings, got {type(exclude_ids).__name__}"
            )

        return cls(
            session_id=str(payload["sessionid"]),
            mode=DeliveryMode.DEFERRED if logsonunload else DeliveryMode.INCREMENTAL,
            exclude_input_regex=payload.get("exclude_input_regex"),
            exclude_input_id=tuple(exclude_ids),
        )

    @classmethod
    def from_json(cls, document: Optional[str]) -> "DeliveryConfig":
        """Parse the JSON document embedded in the page."""
        if not document:
            raise ConfigurationError("Configuration document is missing")
        try:
            payload = json.loads(document)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration document is not valid JSON: {e}") from e
        return cls.from_payload(payload)
