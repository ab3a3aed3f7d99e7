"""Structured logging with correlation IDs.

Log messages are dotted event names (``upload.stored``,
``transcode.completed``) and carry their details as keyword context. Every
record is stamped with the correlation ID of the request or batch that
produced it, so concurrent uploads of a multi-file field can be told apart.
"""

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from video_optimizer.core.tracing import get_span_id, get_trace_id

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes of a bare LogRecord; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "correlation_id"}

NOISY_LOGGERS = ("uvicorn.access", "botocore", "boto3", "s3transfer", "urllib3")


def get_correlation_id() -> str:
    """Get the bound correlation ID.

    Falls back to the active trace ID, then to a new ID that stays bound to
    the current context.
    """
    cid = correlation_id_var.get()
    if cid:
        return cid

    trace_id = get_trace_id()
    if trace_id:
        return trace_id

    cid = uuid.uuid4().hex
    correlation_id_var.set(cid)
    return cid


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of a block.

    Args:
        correlation_id: ID to bind, a new one is generated when omitted

    Yields:
        The bound correlation ID
    """
    cid = correlation_id or uuid.uuid4().hex
    token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES
    }


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        trace_id = get_trace_id()
        if trace_id:
            entry["trace_id"] = trace_id
            entry["span_id"] = get_span_id()

        context = _context_fields(record)
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[1] is not None:
            exc_type, exc_value, exc_traceback = record.exc_info
            entry["exception"] = {"type": exc_type.__name__, "message": str(exc_value)}
            if self.include_stack_trace:
                entry["exception"]["stack_trace"] = traceback.format_exception(
                    exc_type, exc_value, exc_traceback
                )

        return json.dumps(entry, default=str)


class CorrelationIdFilter(logging.Filter):
    """Stamps records logged without helpers with the correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Send all logging to stdout.

    Args:
        level: Root log level name
        json_format: One JSON object per record instead of plain text
        include_stack_trace: Add tracebacks to JSON records of exceptions
    """
    log_level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
        ))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    exception: Optional[BaseException] = None,
    **context: Any,
) -> None:
    """Log a dotted event name with keyword context.

    Args:
        logger: Logger instance
        level: Logging level
        event: Event name, e.g. "upload.stored"
        exception: Attached with its traceback when given
        **context: Event details
    """
    context["correlation_id"] = get_correlation_id()
    logger.log(level, event, exc_info=exception, extra=context)


def log_error(
    logger: logging.Logger,
    event: str,
    exception: Optional[BaseException] = None,
    **context: Any,
) -> None:
    log_event(logger, logging.ERROR, event, exception, **context)


def log_warning(logger: logging.Logger, event: str, **context: Any) -> None:
    log_event(logger, logging.WARNING, event, **context)


def log_info(logger: logging.Logger, event: str, **context: Any) -> None:
    log_event(logger, logging.INFO, event, **context)
