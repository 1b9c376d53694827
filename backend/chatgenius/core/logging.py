"""
Structured logging setup.

All modules log through structlog so that events carry key/value context
instead of interpolated strings:

    logger = get_logger(__name__)
    logger.info("message_indexed", message_id=message_id, namespace="messages")

Output format:
--------------
- LOG_FORMAT=json: one JSON object per line (production, log aggregation)
- LOG_FORMAT=text: colored console output (local development)

The stdlib ``logging`` module is routed through the same processors, so
records emitted by uvicorn, celery and sqlalchemy share the format.
"""

import logging
import sys
from typing import Any

import structlog

from chatgenius.core.config import settings


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once; later calls reconfigure the handlers.

    Args:
        level: Log level name (defaults to settings.LOG_LEVEL)
        log_format: "json" or "text" (defaults to settings.LOG_FORMAT)
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_format = log_format or settings.LOG_FORMAT

    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Third-party loggers that are noisy at INFO
    for noisy in ("httpx", "sentence_transformers", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, root.level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
