"""structlog setup for the scheduler.

Console rendering for local runs, JSON lines when deployed (RESAWOD_LOG_JSON).
Modules log snake_case events with key/value context via get_logger().
"""

import logging
import sys

import structlog

# Chatty third-party loggers kept at WARNING unless we run at DEBUG
_NOISY_LOGGERS = ("urllib3", "requests")


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog processors and the stdlib bridge.

    Args:
        json_output: Render JSON lines instead of the console format.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stdout)]
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger bound with the calling module's name."""
    return structlog.get_logger(name)
