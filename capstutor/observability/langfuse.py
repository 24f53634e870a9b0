"""
OTEL tracing for the tutoring Brain, exported to Langfuse.
CRITICAL: Langfuse takes HTTP/protobuf on /api/public/otel/v1/traces, not gRPC.
"""
import base64
import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from capstutor import config

logger = logging.getLogger(__name__)

_tracer_provider: Optional[TracerProvider] = None


def langfuse_endpoint(host: str) -> str:
    return f"{host.rstrip('/')}/api/public/otel/v1/traces"


def langfuse_auth_header(public_key: str, secret_key: str) -> str:
    """Basic base64(public_key:secret_key)."""
    return "Basic " + base64.b64encode(f"{public_key}:{secret_key}".encode()).decode()


def setup_langfuse_tracing(
    service_name: str = config.SERVICE_NAME,
    langfuse_host: Optional[str] = None,
    public_key: Optional[str] = None,
    secret_key: Optional[str] = None,
) -> TracerProvider:
    """
    Install a global tracer provider. brain.route spans (one per turn) go
    to Langfuse when keys are configured, else to the console exporter.
    """
    global _tracer_provider

    host = langfuse_host or config.LANGFUSE_HOST
    pk = public_key or config.LANGFUSE_PUBLIC_KEY
    sk = secret_key or config.LANGFUSE_SECRET_KEY

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if pk and sk:
        endpoint = langfuse_endpoint(host)
        exporter = OTLPSpanExporter(
            endpoint=endpoint,
            headers={"Authorization": langfuse_auth_header(pk, sk)},
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info(f"Langfuse OTEL tracing configured: {endpoint}")
    else:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.warning("No Langfuse keys found, using console span exporter")

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Safe to call before setup; spans are no-ops until a provider is installed."""
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush pending spans and drop the provider."""
    global _tracer_provider
    if _tracer_provider:
        _tracer_provider.shutdown()
        _tracer_provider = None
