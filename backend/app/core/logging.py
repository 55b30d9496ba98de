"""
Structured logging configuration using structlog.

JSON output in production, colored console output in development.
Delivery codes never reach the log stream: any event key listed in
SENSITIVE_KEYS is masked before rendering.
"""
import logging
import sys
import structlog
from typing import Any

SENSITIVE_KEYS = frozenset({"delivery_code", "authorization", "token"})


def mask_sensitive_values(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor that replaces secrets with a fixed mask."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "****"
    return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON lines (production),
                     False for human-readable output (development).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        mask_sensitive_values,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance (usually named after the module)."""
    return structlog.get_logger(name)
