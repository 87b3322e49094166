"""
Structured logging for the job engine.

Engine modules log through structlog. Records from stdlib loggers (routes,
handler registration, SQLAlchemy, uvicorn) are rendered by the same
renderer, with their ``extra`` fields kept as event keys.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

import structlog

from .settings import settings

_stdlib_handler: logging.Handler | None = None


def _shared_processors() -> list[Any]:
    return [
        # Request and job context, timestamps
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]


def _renderer() -> Any:
    # JSON for production, pretty printing for development
    if settings.debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    """Configure structured logging with structlog."""
    global _stdlib_handler

    level = getattr(logging, settings.log_level)

    # Route stdlib records through the structlog renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*_shared_processors(), structlog.stdlib.ExtraAdder()],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(),
            ],
        )
    )
    root_logger = logging.getLogger()
    if _stdlib_handler is not None:
        root_logger.removeHandler(_stdlib_handler)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    _stdlib_handler = handler

    structlog.configure(
        processors=[
            *_shared_processors(),
            (
                structlog.processors.CallsiteParameterAdder(
                    parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
                )
                if settings.debug
                else structlog.processors.CallsiteParameterAdder(parameters=[])
            ),
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Add request-specific context to all log messages."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)


@contextmanager
def job_context(
    job_id: UUID, job_type: str, tenant_id: str, dispatcher_id: str
) -> Iterator[None]:
    """
    Bind a job's identity to every log event emitted inside the block.

    The dispatcher runs each job in its own task, so bindings from one job
    never leak into another's events.
    """
    with structlog.contextvars.bound_contextvars(
        job_id=str(job_id),
        job_type=job_type,
        tenant_id=tenant_id,
        dispatcher_id=dispatcher_id,
    ):
        yield
