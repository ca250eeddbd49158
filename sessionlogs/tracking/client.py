"""Tracking client - wires buffer, capture and delivery for one page session."""

from typing import Mapping, Optional, Union

import structlog

from sessionlogs.errors import ChannelError, ConfigurationError

from .buffer import LocalEventBuffer
from .bus import NotificationBus
from .capture import CaptureAdapter
from .channel import Channel, Priority
from .delivery import DeliveryController
from .lifecycle import PageLifecycle
from .models import BROWSER_DATA_CHANNEL, DeliveryConfig
from .store import KeyValueStore, build_store

logger = structlog.get_logger()

ConfigSource = Union[str, Mapping, DeliveryConfig]


class TrackingClient:
    """Client side of one tracked session.

    Owns the session buffer, the capture adapter and the delivery controller.
    Nothing is shared with other sessions.
    """

    def __init__(
        self,
        config: DeliveryConfig,
        bus: NotificationBus,
        channel: Channel,
        store: Optional[KeyValueStore] = None,
        lifecycle: Optional[PageLifecycle] = None,
    ):
        """Initialize the client.

        Args:
            config: Session configuration
            bus: Host notification bus
            channel: Outbound channel to the coordinator
            store: Client key-value store (in-memory with the configured quota if omitted)
            lifecycle: Page lifecycle used for the deferred-mode final flush
        """
        self.config = config
        self.bus = bus
        self.channel = channel
        self.lifecycle = lifecycle or PageLifecycle()
        self.buffer = LocalEventBuffer(store or build_store(), config.session_id)
        self.controller = DeliveryController(self.buffer, channel, config)
        self.adapter = CaptureAdapter(bus, self.buffer, self.controller, config)
        self.started = False
        self.log = logger.bind(component="tracking_client", session_id=config.session_id)

    def start(self, browser_info: Optional[Mapping[str, str]] = None) -> "TrackingClient":
        """Subscribe to the host and install the termination hook.

        Args:
            browser_info: Browser descriptor pushed once to the coordinator
        """
        if self.started:
            return self

        self.adapter.attach()
        self.controller.install_termination_hook(self.lifecycle)
        if browser_info is not None:
            try:
                self.channel.publish(BROWSER_DATA_CHANNEL, dict(browser_info), priority=Priority.EVENT)
            except ChannelError as e:
                self.log.warning("Browser descriptor push failed", error=str(e))

        self.started = True
        self.log.info(
            "Tracking started",
            mode=self.config.mode.value,
            restored_events=len(self.buffer),
        )
        return self

    def teardown(self) -> None:
        """Release host subscriptions and the termination hook."""
        self.adapter.detach()
        self.controller.close()
        self.started = False
        self.log.info("Tracking stopped", captured=self.adapter.captured, rejected=self.adapter.rejected)


def load_config(source: ConfigSource) -> DeliveryConfig:
    """Build a DeliveryConfig from a JSON document, a payload or a config.

    Raises:
        ConfigurationError: If the source is missing or malformed
    """
    if isinstance(source, DeliveryConfig):
        return source
    if isinstance(source, Mapping):
        return DeliveryConfig.from_payload(source)
    return DeliveryConfig.from_json(source)


def track_usage(
    config: Optional[ConfigSource],
    bus: NotificationBus,
    channel: Channel,
    store: Optional[KeyValueStore] = None,
    lifecycle: Optional[PageLifecycle] = None,
    browser_info: Optional[Mapping[str, str]] = None,
) -> Optional[TrackingClient]:
    """Start tracking a page session.

    Fails open: a missing or malformed configuration is logged and the host
    application keeps running untracked.

    Returns:
        The started client, or None if tracking could not be set up
    """
    try:
        delivery_config = load_config(config)
    except ConfigurationError as e:
        logger.error("Tracking disabled, invalid configuration", error=str(e))
        return None

    client = TrackingClient(delivery_config, bus, channel, store=store, lifecycle=lifecycle)
    return client.start(browser_info=browser_info)
