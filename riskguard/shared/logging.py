"""structlog configuration shared by the service and the CLI."""

import logging
import sys
from typing import TextIO

import structlog


def setup_logging(log_level: str = "INFO", stream: TextIO | None = None) -> None:
    """Configure structlog to emit one JSON object per line (stdout by default)."""
    stream = stream or sys.stdout
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=stream, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
