"""
Structured logging for the cross-check service.

Application events go through structlog; records from uvicorn, httpx
and SQLAlchemy are routed through the same renderer so every line has
one shape. Each request carries a correlation ID, and each processed
image binds its file name and tier while it is in flight.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from app.core.config import get_settings

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Third-party loggers that are only interesting when something is wrong
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation ID to the current context.

    Args:
        correlation_id: Incoming ID (e.g. from X-Correlation-ID); a fresh
            UUID is generated when empty.

    Returns:
        str: The ID now in effect.
    """
    value = correlation_id or uuid.uuid4().hex
    _correlation_id.set(value)
    return value


def _inject_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    cid = get_correlation_id()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _strip_uvicorn_extras(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.pop("color_message", None)
    return event_dict


@contextmanager
def image_log_context(file_name: str, model_tier: str) -> Iterator[None]:
    """
    Tag every event logged inside the block with the image being processed.

    Example:
        >>> with image_log_context("car.jpg", "premium"):
        ...     logger.info("ocr_call_started")
    """
    with structlog.contextvars.bound_contextvars(file_name=file_name, model_tier=model_tier):
        yield


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _inject_correlation_id,
        _strip_uvicorn_extras,
    ]


def _renderers(log_format: str) -> list[Processor]:
    if log_format == "json":
        # Keep Hangul plates readable
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    LOG_FORMAT=json renders one JSON object per line; LOG_FORMAT=text
    renders a console format for local development.
    """
    settings = get_settings()
    shared = _shared_processors()

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(settings.log_format),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger, optionally with pre-bound fields.

    Example:
        >>> logger = get_logger(__name__, provider="naver")
        >>> logger.info("ocr_request_sent", request_id="batch-1a2b3c")
    """
    logger = structlog.get_logger(name)
    return logger.bind(**initial) if initial else logger
