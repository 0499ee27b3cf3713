"""Structured logging configuration using structlog.

JSON output for production (one event per line, ready for log shippers)
and colored console output for development. Poll loops bind ``job_id`` and
``target`` on their loggers; callers that want the same fields on their own
events can use ``job_log_context``.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, WrappedLogger

from docproc import __version__


def app_context_processor(app_name: str = "docproc") -> structlog.types.Processor:
    """Build a processor adding application name and version to all log events."""

    def add_app_context(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict["app"] = app_name
        event_dict["app_version"] = __version__
        return event_dict

    return add_app_context


def configure_logging(
    log_level: str = "INFO",
    environment: str = "development",
    app_name: str = "docproc",
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: "production" selects JSON output, anything else the console renderer
        app_name: Value of the ``app`` field on every event (Settings.APP_NAME)
    """
    log_level_int = getattr(logging, log_level.upper(), logging.INFO)
    is_production = environment.lower() == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        app_context_processor(app_name),
    ]

    if is_production:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level_int)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level_int)

    # Per-request lines from the HTTP stack drown out poll progress
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=log_level,
        environment=environment,
        renderer="json" if is_production else "console",
    )


@contextmanager
def job_log_context(job_id: str, provider: str | None = None, **extra: Any) -> Iterator[None]:
    """Bind job fields to every structlog event emitted inside the block.

    Usage:
        with job_log_context(job_id, provider="reducto"):
            await client.parse_to_ir(source)
    """
    fields: dict[str, Any] = {"job_id": job_id, **extra}
    if provider is not None:
        fields["provider"] = provider
    with structlog.contextvars.bound_contextvars(**fields):
        yield
