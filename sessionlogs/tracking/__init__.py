"""Client side of session tracking.

Captures host notifications into a local buffer and delivers them to the
session coordinator, either as they happen or once when the page closes.
"""

from .browser import browser_descriptor
from .buffer import LocalEventBuffer
from .bus import NotificationBus, Subscription
from .capture import CaptureAdapter
from .channel import Channel, CoordinatorChannel, HttpChannel, Priority
from .client import TrackingClient, load_config, track_usage
from .delivery import UNLOAD_PROMPT, DeliveryController, serialize_snapshot
from .lifecycle import PageLifecycle, UnloadHook
from .models import (
    BROWSER_DATA_CHANNEL,
    CATEGORY_CHANNELS,
    ERROR_CHANNEL,
    INPUT_CHANNEL,
    LAST_EVENT_CHANNEL,
    OUTPUT_CHANNEL,
    CapturedEvent,
    DeliveryConfig,
    DeliveryMode,
    ErrorPayload,
    EventCategory,
    InputPayload,
    NotificationKind,
    OutputPayload,
)
from .snippet import SnippetConfig, TrackingSnippetGenerator, generate_snippet, read_config_tag, render_config_tag
from .store import JsonFileStore, KeyValueStore, MemoryStore, build_store

__all__ = [
    # Models
    "CapturedEvent",
    "DeliveryConfig",
    "DeliveryMode",
    "EventCategory",
    "NotificationKind",
    "InputPayload",
    "ErrorPayload",
    "OutputPayload",
    # Channel identifiers
    "INPUT_CHANNEL",
    "ERROR_CHANNEL",
    "OUTPUT_CHANNEL",
    "LAST_EVENT_CHANNEL",
    "BROWSER_DATA_CHANNEL",
    "CATEGORY_CHANNELS",
    # Buffer
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "build_store",
    "LocalEventBuffer",
    # Capture and delivery
    "NotificationBus",
    "Subscription",
    "CaptureAdapter",
    "DeliveryController",
    "UNLOAD_PROMPT",
    "serialize_snapshot",
    "PageLifecycle",
    "UnloadHook",
    # Channels
    "Channel",
    "CoordinatorChannel",
    "HttpChannel",
    "Priority",
    # Client
    "TrackingClient",
    "load_config",
    "track_usage",
    "browser_descriptor",
    # Snippet
    "SnippetConfig",
    "TrackingSnippetGenerator",
    "generate_snippet",
    "render_config_tag",
    "read_config_tag",
]
