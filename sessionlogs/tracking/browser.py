"""Browser descriptor pushed once when the tracking client starts."""

from datetime import UTC, datetime
from typing import Optional


def browser_descriptor(
    user_agent: str,
    screen_width: int = 0,
    screen_height: int = 0,
    window_width: int = 0,
    window_height: int = 0,
    pixel_ratio: float = 1.0,
    connected_at: Optional[datetime] = None,
) -> dict[str, str]:
    """Describe the browser a session runs in.

    Args:
        user_agent: Navigator user agent string
        screen_width: Screen width in pixels
        screen_height: Screen height in pixels
        window_width: Inner window width in pixels
        window_height: Inner window height in pixels
        pixel_ratio: Device pixel ratio
        connected_at: When the page connected (defaults to now)

    Returns:
        Flat string map stored with the session record
    """
    connected_at = connected_at or datetime.now(UTC)
    return {
        "user_agent": user_agent,
        "screen_res": f"{screen_width}x{screen_height}",
        "browser_res": f"{window_width}x{window_height}",
        "pixel_ratio": f"{pixel_ratio:g}",
        "browser_connected": connected_at.isoformat(),
    }
