"""Span helper used around step execution."""

import contextlib

from opentelemetry import trace

from fieldflow.config import ENABLE_OTEL


@contextlib.asynccontextmanager
async def traced_span(name: str, **attrs):
    """Yields a span when tracing is enabled, otherwise None."""
    if not ENABLE_OTEL:
        yield None
        return

    tracer = trace.get_tracer("fieldflow")
    with tracer.start_as_current_span(name) as span:
        for k, v in attrs.items():
            if v is not None:
                span.set_attribute(k, v)
        yield span
