"""Centralized logging setup with Logfire integration.

Logfire itself is configured in ``coach_memory.main``; this module wires
structlog (and stdlib logging from third-party libraries) through it.
"""

import logging
import sys

import logfire
import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder
from structlog.types import EventDict, Processor, WrappedLogger
from structlog.typing import FilteringBoundLogger


def add_logfire_context(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Expose the error type as a Logfire attribute."""
    if "error" in event_dict:
        event_dict["error_type"] = type(event_dict["error"]).__name__

    return event_dict


def setup_logging(level: int = logging.INFO, json_output: bool = False) -> None:
    """Set up application-wide logging with Logfire and structlog integration.

    Logfire is primarily configured via environment variables:
    - LOGFIRE_TOKEN: Authentication token
    - LOGFIRE_SERVICE_NAME: Service name (defaults to project name)
    - LOGFIRE_ENVIRONMENT: Environment (defaults to "development")

    Args:
        level: Minimum level for both structlog and stdlib logging
        json_output: Render JSON lines instead of the colored console format
    """
    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    )

    processors: list[Processor] = [
        # Merge context from contextvars (owner_id, operation)
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        CallsiteParameterAdder(
            parameters=[
                CallsiteParameter.FILENAME,
                CallsiteParameter.LINENO,
                CallsiteParameter.FUNC_NAME,
            ]
        ),
        add_logfire_context,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        # Must come before the final renderer
        logfire.StructlogProcessor(),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        # PrintLogger avoids double logging with the standard library
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route neo4j/httpx/anthropic stdlib logs through the same processors
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=processors[:-2],  # Exclude the Logfire processor and final renderer
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structured logger instance (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)
