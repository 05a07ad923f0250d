"""
Structured logging setup.
"""
import logging
import sys
from typing import Optional

import structlog

from grantmatch.core.config import settings


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to settings.log_level.
        json_output: Render JSON lines instead of console output.
            Defaults to settings.log_json, forced on in production.
    """
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if json_output is None:
        json_output = settings.log_json or settings.is_production

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
