"""Structured logging setup.

Routes structlog through the stdlib root logger so library and host log lines
share one handler. Call ``setup_logging`` once at application start; the
library itself only ever calls ``structlog.get_logger``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from lexsearch.config import Settings, load_settings

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the root logger from ``settings.app``."""
    settings = settings or load_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    level = settings.app.log_level.upper()
    if level not in _LEVELS:
        logging.getLogger("lexsearch").warning("Invalid log level %r, defaulting to INFO", level)
        level = "INFO"

    if level == "DEBUG":
        shared_processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            )
        )

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.app.log_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Avoid stacking handlers when called more than once
    root_logger.handlers = [
        h for h in root_logger.handlers
        if not isinstance(getattr(h, "formatter", None), structlog.stdlib.ProcessorFormatter)
    ]
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.get_logger("lexsearch").info("Logging configured", log_level=level, json=settings.app.log_json)
