"""Structured logging for the tracking server.

`configure_logging` is called once by the server entry point. Session code
logs through module-level structlog loggers; the coordinator scopes each
storage write with `LogContext` and `log_operation` so every line of the
write carries the session id.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Optional

import structlog

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Route structlog through the standard library at the given level.

    Args:
        level: One of LEVELS, case-insensitive
        json_format: Render one JSON object per line instead of console output

    Raises:
        ValueError: If the level is not a known level name
    """
    level_name = level.upper()
    if level_name not in LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(LEVELS)}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level_name))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LogContext:
    """Bind key-value pairs to every log line emitted inside the block.

    Usage:
        with LogContext(session_id="3f2a..."):
            storage.write(record)
    """

    def __init__(self, **context):
        self.context = context

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)


@contextmanager
def log_operation(operation: str, logger: Optional[structlog.BoundLogger] = None, **context):
    """Log `<operation> started`, then `completed` or `failed`.

    Exceptions are logged and re-raised.

    Yields:
        Dict the caller may fill with result fields for the completion line
    """
    log = (logger or structlog.get_logger()).bind(operation=operation, **context)
    log.info(f"{operation} started")
    result = {}

    try:
        yield result
    except Exception as e:
        log.error(f"{operation} failed", error=str(e), **result)
        raise
    log.info(f"{operation} completed", **result)
