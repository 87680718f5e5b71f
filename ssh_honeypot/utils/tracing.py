"""
Tracing Bootstrap
OpenTelemetry tracer provider with an OTLP gRPC exporter
"""

import logging
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

def init_tracer(service_name: str = "ssh-honeypot", endpoint: Optional[str] = None) -> Callable[[], None]:
    """Install a global tracer provider and return its shutdown callable.

    Without an endpoint spans stay on the no-op provider. Exporter problems
    are logged and never stop the service.
    """
    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, tracing disabled")
        return lambda: None

    try:
        resource = Resource.create({
            SERVICE_NAME: service_name,
            "application": service_name
        })
        provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.error(f"Failed to create tracer provider: {e}")
        return lambda: None

    logger.info(f"Exporting traces to {endpoint} as '{service_name}'")

    def shutdown():
        try:
            provider.shutdown()
        except Exception as e:
            logger.error(f"Failed to shutdown TracerProvider: {e}")

    return shutdown

def record_failure(span: Span, error: BaseException):
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))
