from __future__ import annotations

import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from fulfillment.infrastructure.settings import otel_exporter_endpoint, otel_service_name

_OTEL_CONFIGURED = False
logger = logging.getLogger(__name__)


def _add_exporter(provider: TracerProvider, endpoint: str) -> None:
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
    except Exception:
        logger.exception("otel_exporter_setup_failed")
        return
    provider.add_span_processor(BatchSpanProcessor(exporter))


def configure_otel(app: FastAPI) -> None:
    """Traces every request; spans are exported only when an OTLP endpoint is configured."""
    global _OTEL_CONFIGURED
    if _OTEL_CONFIGURED:
        return

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: otel_service_name()}))
    endpoint = otel_exporter_endpoint()
    if endpoint:
        _add_exporter(provider, endpoint)

    trace.set_tracer_provider(provider)
    set_global_textmap(TraceContextTextMapPropagator())
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    _OTEL_CONFIGURED = True
