"""OpenTelemetry setup for the API process and the worker."""

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from fieldflow.config import ENABLE_OTEL, ENV, OTEL_EXPORTER_ENDPOINT


def init_tracer(
    service_name: str = "fieldflow",
    endpoint: str = OTEL_EXPORTER_ENDPOINT,
) -> Optional[TracerProvider]:
    """Install an OTLP-exporting provider. No-op unless ENABLE_OTEL is set."""
    if not ENABLE_OTEL:
        return None

    provider = TracerProvider(
        resource=Resource.create({
            "service.name": service_name,
            "deployment.environment": ENV,
        })
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    return provider
