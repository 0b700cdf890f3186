"""
hpvs_deploy.logging - Logging Setup
=====================================

Routes structlog through the standard library logger (stderr) so the CLI
output stays readable while every event keeps its structured fields.
"""

import logging
from typing import Any

import structlog


def configure_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure the structlog/standard logging bridge.

    Args:
        level: Standard logging level or level name.
        json_output: Render JSON lines instead of human-readable console lines.
    """
    if isinstance(level, str):
        level = level.upper()

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s", force=True)


def bind_context(**kwargs: Any) -> None:
    """Bind fields (such as the run id) to every subsequent log event."""
    structlog.contextvars.bind_contextvars(**kwargs)
