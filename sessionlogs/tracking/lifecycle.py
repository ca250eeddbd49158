"""Page lifecycle hooks.

Models the browser's before-unload signal. Delivery of this signal is best
effort: the runtime may skip it entirely on an abrupt close, and a handler
may be cut short at any point. Nothing registered here is guaranteed to run.
"""

from typing import Callable, Optional

import structlog

logger = structlog.get_logger()

UnloadHandler = Callable[[], Optional[str]]


class UnloadHook:
    """Cancellation handle for a before-unload registration."""

    def __init__(self, lifecycle: "PageLifecycle", handler: UnloadHandler):
        self._lifecycle = lifecycle
        self.handler = handler

    def cancel(self) -> None:
        """Unregister the handler."""
        self._lifecycle._remove(self.handler)


class PageLifecycle:
    """Before-unload handler registry for one page."""

    def __init__(self):
        self._handlers: list[UnloadHandler] = []
        self.unload_count = 0

    def on_before_unload(self, handler: UnloadHandler) -> UnloadHook:
        """Register a handler run when the page is about to close.

        The handler may return a confirmation prompt; returning one asks the
        user to confirm leaving the page.
        """
        self._handlers.append(handler)
        return UnloadHook(self, handler)

    def _remove(self, handler: UnloadHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def fire_before_unload(self) -> Optional[str]:
        """Run every handler as the page starts closing.

        Returns:
            The first confirmation prompt requested by a handler, if any
        """
        self.unload_count += 1
        prompt = None
        for handler in list(self._handlers):
            try:
                result = handler()
            except Exception:
                logger.exception("Before-unload handler failed")
                continue
            if prompt is None and result:
                prompt = result
        return prompt
