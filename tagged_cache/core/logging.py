"""
Structured logging setup.

Modules log through ``structlog.get_logger(__name__)`` with keyword event
fields; ``configure_logging`` wires structlog onto the standard library so
host application handlers receive the records.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import get_settings


def configure_logging(level: Optional[str] = None, json_output: bool = True) -> None:
    """
    Configure structlog and the root logger.

    Args:
        level: Standard library level name, ``LOG_LEVEL`` setting if omitted
        json_output: Render JSON lines instead of the console renderer
    """
    level = level or get_settings().LOG_LEVEL
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
