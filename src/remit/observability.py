"""Structured logging configuration with structlog.

Usage:
    # At process startup (CLI, service host)
    from remit.observability import configure_logging

    configure_logging(environment="production")   # JSON output
    configure_logging(environment="development")  # Console output

    # Then in any module
    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("remittance_created", remittance_id=0)
"""

from __future__ import annotations

import logging
import os
import sys

import structlog
from structlog.typing import Processor


LOG_LEVEL_ENV = "REMIT_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"


def _get_log_level() -> int:
    level_name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(environment: str = "production") -> None:
    """Configure structlog once for the process.

    Args:
        environment: 'production' for JSON lines, anything else for
            human-readable console output.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
