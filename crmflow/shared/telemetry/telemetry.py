"""OpenTelemetry wiring shared by the API process and the scheduler worker.

EngineTracing owns one TracerProvider. The engine's spans (see tracing.traced)
go through it once install() has registered it as the global provider.
"""

import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from sqlalchemy.ext.asyncio import AsyncEngine

from crmflow.core.config import Settings

logger = logging.getLogger(__name__)

# Health checks are polled constantly; their spans are noise.
_UNTRACED_PATHS = "/api/v1/health,/api/v1/health/ready"


def _exporter_for(settings: Settings) -> SpanExporter | None:
    kind = settings.telemetry_exporter
    if kind == "none":
        return None
    endpoint = settings.telemetry_otlp_endpoint
    if kind == "otlp":
        if endpoint:
            return OTLPSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
        logger.warning("TELEMETRY_EXPORTER=otlp without an endpoint; spans go to the console")
    return ConsoleSpanExporter()


class EngineTracing:
    """Tracer provider for one process, built from Settings."""

    def __init__(self, settings: Settings, component: str = "api") -> None:
        self.provider = TracerProvider(
            resource=Resource(
                attributes={
                    SERVICE_NAME: settings.app_name,
                    SERVICE_VERSION: settings.app_version,
                    "deployment.environment": settings.telemetry_environment,
                    "crmflow.component": component,
                }
            ),
            sampler=TraceIdRatioBased(settings.telemetry_sample_rate),
        )
        exporter = _exporter_for(settings)
        if exporter is not None:
            self.provider.add_span_processor(BatchSpanProcessor(exporter))
        self.exporter_name = type(exporter).__name__ if exporter else "none"

    def install(self) -> "EngineTracing":
        trace.set_tracer_provider(self.provider)
        logger.info("Tracing installed (exporter=%s)", self.exporter_name)
        return self

    def instrument_app(self, app: FastAPI) -> None:
        FastAPIInstrumentor.instrument_app(
            app, tracer_provider=self.provider, excluded_urls=_UNTRACED_PATHS
        )

    def instrument_db(self, engine: AsyncEngine) -> None:
        """Trace queries: log appends, claims and due-record leases."""
        SQLAlchemyInstrumentor().instrument(
            engine=engine.sync_engine, tracer_provider=self.provider
        )

    def shutdown(self) -> None:
        """Flush pending spans. Export errors are logged, never raised on exit."""
        try:
            self.provider.shutdown()
        except Exception:
            logger.exception("Tracer provider shutdown failed")
