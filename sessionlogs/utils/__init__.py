"""Utility modules for session tracking.

Provides:
- Structured logging configuration
"""

from .logging import LEVELS, LogContext, configure_logging, log_operation

__all__ = [
    # Logging
    "configure_logging",
    "LEVELS",
    "LogContext",
    "log_operation",
]
