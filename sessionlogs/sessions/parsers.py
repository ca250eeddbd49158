"""Decoders for payloads arriving on the tracking channel."""

import json
from datetime import UTC, datetime
from typing import Any, Mapping, Optional

from sessionlogs.errors import ParseError


def _decode(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ParseError(f"Snapshot is not valid JSON: {e}") from e
    return value


def parse_log(payload: Any, key: Optional[str] = None) -> list[dict]:
    """Decode a category snapshot into a list of event dicts.

    Accepts `{key: "<json list>"}` as pushed by the client, a bare JSON string
    or an already decoded list.

    Raises:
        ParseError: If the payload is not a list of events
    """
    if isinstance(payload, Mapping):
        if key is None:
            if len(payload) != 1:
                raise ParseError(f"Cannot tell which snapshot to read from keys {sorted(payload)}")
            key = next(iter(payload))
        if key not in payload:
            raise ParseError(f"Snapshot payload has no {key!r} key")
        payload = payload[key]

    events = _decode(payload)
    if events is None:
        return []
    if not isinstance(events, list):
        raise ParseError(f"Snapshot must be a list, got {type(events).__name__}")

    for event in events:
        if not isinstance(event, Mapping) or "name" not in event or "timestamp" not in event:
            raise ParseError(f"Malformed event in snapshot: {event!r}")
        timestamp = event["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ParseError(f"Event timestamp must be a number, got {timestamp!r}")
    return [dict(event) for event in events]


def ms_to_datetime(timestamp: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(float(timestamp) / 1000, UTC)


def parse_last_event(payload: Any) -> Optional[dict]:
    """Decode the last-event push, turning its timestamp into a datetime."""
    event = _decode(payload)
    if event is None:
        return None
    if not isinstance(event, Mapping) or "timestamp" not in event:
        raise ParseError(f"Malformed last event: {event!r}")
    event = dict(event)
    try:
        event["timestamp"] = ms_to_datetime(event["timestamp"])
    except (TypeError, ValueError, OverflowError) as e:
        raise ParseError(f"Invalid last event timestamp {event['timestamp']!r}") from e
    return event


def parse_browser_data(payload: Any) -> dict[str, str]:
    """Flatten the browser descriptor into a string map."""
    data = _decode(payload)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ParseError(f"Browser data must be an object, got {type(data).__name__}")
    return {str(k): "" if v is None else str(v) for k, v in data.items()}
