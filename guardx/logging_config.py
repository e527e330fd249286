"""
Structured logging configuration using structlog.

Produces JSON logs in production, human-readable colored logs in development.
Workflow tasks bind ``workflow_id`` and HTTP requests bind ``request_id``
through structlog context variables. Both are rendered on every line, stdlib
loggers included, directly after the event so a deposit can be followed
across its steps.
"""

import logging
import sys
from typing import IO, Optional

import structlog

from .config import settings

# Correlation ids, in the order they are rendered
CORRELATION_KEYS = ("workflow_id", "request_id")


def order_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Move bound correlation ids right after the event; unset ids are dropped."""
    ordered: structlog.types.EventDict = {"event": event_dict.pop("event", "")}
    for key in CORRELATION_KEYS:
        value = event_dict.pop(key, None)
        if value is not None:
            ordered[key] = value
    ordered.update(event_dict)
    return ordered


def setup_logging(log_level: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
    """Configure structlog for structured JSON logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
        stream: Where log lines go (default: stdout)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        # Keep insertion order so the ids stay up front
        renderer = structlog.dev.ConsoleRenderer(sort_keys=False)
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (logging.getLogger(__name__)) pick up the bound ids too
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            order_correlation_ids,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
