"""Outbound channel from the tracking client to the session coordinator.

A push names a channel identifier (see models.CATEGORY_CHANNELS) and carries a
JSON-compatible payload. Pushes are fire-and-forget: a failed push raises
ChannelError and is never retried by the channel itself.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import httpx

from sessionlogs.errors import ChannelError, SessionLogsError

if TYPE_CHECKING:
    from sessionlogs.sessions.coordinator import SessionCoordinator


class Priority(str, Enum):
    """Scheduling priority of a push."""

    VALUE = "value"  # Receiver may coalesce identical consecutive values
    EVENT = "event"  # Always delivered, even if identical to the previous push


class Channel(ABC):
    """Abstract outbound channel."""

    @abstractmethod
    def publish(self, identifier: str, payload: Any, priority: Priority = Priority.VALUE) -> None:
        """Push payload under identifier.

        Raises:
            ChannelError: If the push could not be delivered
        """
        pass

    def close(self) -> None:
        """Release any resources held by the channel."""
        pass


class CoordinatorChannel(Channel):
    """Channel delivering pushes straight to an in-process coordinator."""

    def __init__(self, coordinator: "SessionCoordinator"):
        self.coordinator = coordinator

    def publish(self, identifier: str, payload: Any, priority: Priority = Priority.VALUE) -> None:
        try:
            self.coordinator.receive(identifier, payload, priority=priority)
        except SessionLogsError as e:
            raise ChannelError(f"Coordinator rejected push to {identifier}: {e}") from e


class HttpChannel(Channel):
    """Channel posting pushes to the tracking API.

    Example:
        channel = HttpChannel("http://localhost:8000", session_id="3f2a...")
        channel.publish(".sessionlogs_input", {"inputs": "[]"})
    """

    def __init__(
        self,
        base_url: str,
        session_id: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ):
        """Initialize the channel.

        Args:
            base_url: Root URL of the tracking API server
            session_id: Session the pushes belong to
            client: Optional preconfigured httpx client
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/v1/tracking/sessions/{self.session_id}/inputs"

    def publish(self, identifier: str, payload: Any, priority: Priority = Priority.VALUE) -> None:
        body = {"name": identifier, "value": payload, "priority": Priority(priority).value}
        try:
            response = self._client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ChannelError(f"Push to {identifier} failed: {e}") from e

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
