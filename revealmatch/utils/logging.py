"""Logging configuration for the RevealMatch service."""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from revealmatch.config import settings

# Third-party loggers kept at WARNING unless LOG_LEVEL is DEBUG
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "asyncio")


def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the service name and environment."""
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the service.

    Routes the standard library logger (uvicorn, SQLAlchemy) through stdout
    and sets up the structlog processors: context variables, level, logger
    name, service tags, timestamps and exception info. Development gets
    `ConsoleRenderer`, every other environment gets `JSONRenderer`.
    """
    # Set the log level
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        stream=sys.stdout,
    )
    if settings.LOG_LEVEL.upper() != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Configure structlog processors
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    # Add environment-specific processors
    if settings.ENVIRONMENT.lower() == "development":
        # Pretty printing for development
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        # JSON lines for log shipping
        processors.append(structlog.processors.JSONRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger with the given name and initial values.

    Args:
        name (str): Logger name (usually `__name__`).
        **initial_values: Key-value pairs to bind, e.g. `match_id`.

    Returns:
        structlog.stdlib.BoundLogger: A configured structured logger instance.
    """
    return structlog.get_logger(name).bind(**initial_values)  # type: ignore


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: BaseException,
    message: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log an error with structured context.

    Extracts error type and message. RevealMatch errors also carry their
    `details` (match, conversation or transaction ids) into the event.

    Args:
        logger (structlog.stdlib.BoundLogger): The logger instance to use.
        error (BaseException): The exception to log.
        message (Optional[str], optional): Custom message. Defaults to "An error occurred".
        extra (Optional[Dict[str, Any]], optional): Additional context to log. Not modified.
    """
    context = dict(extra or {})
    context["error_type"] = error.__class__.__name__
    context["error_message"] = str(error)

    # Include error details if available
    if hasattr(error, "details"):
        context["error_details"] = error.details

    logger.error(message or "An error occurred", **context, exc_info=error)
