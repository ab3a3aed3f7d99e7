"""OpenTelemetry tracing for upload pipelines.

Each save runs in its own span, with the encode attempt as a child span, so
staging, encoding and placement timings of one upload show up together.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Span, SpanContext, Status, StatusCode

from video_optimizer import __version__

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "video_optimizer"

_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str,
    service_version: str,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install a tracer provider for the service.

    Args:
        service_name: Reported service name
        service_version: Reported service version
        enable_console_export: Print finished spans to stdout

    Returns:
        The pipeline tracer
    """
    global _provider

    provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    }))
    if enable_console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider

    logger.info(
        "tracing.initialized",
        extra={"service": service_name, "version": service_version, "console_export": enable_console_export},
    )
    return get_tracer()


def get_tracer() -> trace.Tracer:
    """Get the pipeline tracer. Spans are no-ops until tracing is set up."""
    return trace.get_tracer(INSTRUMENTATION_NAME, __version__)


def get_current_span() -> Span:
    return trace.get_current_span()


def _current_span_context() -> Optional[SpanContext]:
    context = get_current_span().get_span_context()
    return context if context.is_valid else None


def get_trace_id() -> Optional[str]:
    """Hex trace ID of the active span, if any."""
    context = _current_span_context()
    return format(context.trace_id, "032x") if context else None


def get_span_id() -> Optional[str]:
    """Hex span ID of the active span, if any."""
    context = _current_span_context()
    return format(context.span_id, "016x") if context else None


@contextmanager
def create_span(name: str, attributes: Optional[dict[str, Any]] = None) -> Iterator[Span]:
    """Run a block inside a new child span of the active one.

    Attributes whose value is None are left out.
    """
    attributes = {key: value for key, value in (attributes or {}).items() if value is not None}
    with get_tracer().start_as_current_span(name, attributes=attributes) as span:
        yield span


def record_exception(exception: BaseException, attributes: Optional[dict[str, Any]] = None) -> None:
    """Attach an exception to the active span and mark the span failed.

    Used for failures that are handled rather than raised, which the span
    would otherwise not see.
    """
    span = get_current_span()
    if not span.is_recording():
        return
    span.record_exception(exception, attributes=attributes)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def shutdown_tracing() -> None:
    """Flush pending spans and stop the provider."""
    global _provider

    if _provider is not None:
        _provider.shutdown()
        _provider = None
