"""Structured logging setup.

Routes structlog through the standard library so uvicorn, SQLAlchemy
and httpx records share one output stream.
"""

import logging
import sys

import structlog

from storefront.infrastructure.config import settings


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the root logger.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        json_logs: Render JSON lines instead of the console renderer;
            defaults to ``settings.log_json``.
    """
    level = (level or settings.log_level).upper()
    json_logs = settings.log_json if json_logs is None else json_logs

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
