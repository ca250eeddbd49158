"""HTTP API for session tracking."""

from .tracking import router as tracking_router

__all__ = ["tracking_router"]
