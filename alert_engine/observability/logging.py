"""
Structured logging configuration using structlog.

The manager's lifecycle and scheduling code logs key/value events
through structlog; channels, dispatcher, evaluator and detector use
standard library loggers. ``setup_logging`` routes both to stdout,
as JSON in production and as colored console lines otherwise.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from alert_engine.config.settings import get_settings


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structured logging for the engine.

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Rule triggered", rule_id="cpu-high", severity="critical")

    Args:
        level: Log level name (defaults to settings.log_level)
        json_logs: Force JSON output on or off (defaults to production only)
    """
    settings = get_settings()
    level = level or settings.log_level
    if json_logs is None:
        json_logs = settings.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Processor
    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # Webhook/Slack transports are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (defaults to the caller's module name)."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables to all subsequent log messages.

    Useful for tagging every line of an evaluation pass, e.g.
    ``bind_context(tick=ts)``.

    Args:
        **kwargs: Key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
