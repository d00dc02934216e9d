import logging

import structlog

from justbecause.core.config import LOG_LEVEL, LOG_FORMAT


def _get_log_level() -> int:
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)


def configure_logging():
    """Configure structlog for the API process."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
            if LOG_FORMAT == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
