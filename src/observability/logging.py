"""
Structured logging configuration using structlog.

JSON lines in production, coloured console output everywhere else.
Pipeline runs bind ``run_id`` and ``trigger`` through contextvars so
every log line emitted while a run is in flight can be correlated.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings


def setup_logging() -> None:
    """
    Configure structlog and route stdlib logging through it.

    Repositories and the push gateway log through ``logging.getLogger``;
    the pipeline uses ``structlog.get_logger``. Both end up on stdout.
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    for noisy in ("httpx", "httpcore", "asyncio", "asyncpg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_run_context(run_id: str, trigger: str) -> None:
    """Attach the current pipeline run to all subsequent log lines."""
    structlog.contextvars.bind_contextvars(run_id=run_id, trigger=trigger)


def clear_run_context() -> None:
    """Drop run correlation fields bound by :func:`bind_run_context`."""
    structlog.contextvars.unbind_contextvars("run_id", "trigger")
