import logging
from typing import Sequence

import uvicorn
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from campus_proxy.cors.policy import get_origin_policy
from campus_proxy.proxy.rewrite import get_path_rewriter
from campus_proxy.proxy.route import router
from campus_proxy.vars import (
    HOST,
    METRICS_ENABLED,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops the per-message ASGI send/receive spans,
    keeping one server span plus the proxy_request span per request.
    """

    NOISY_EVENT_TYPES = {"http.response.start", "http.response.body", "http.request"}

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") in self.NOISY_EVENT_TYPES
            )
        ]
        if kept:
            return self.exporter.export(kept)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(app: FastAPI) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
        logger.info(f"Exporting traces to {OTLP_ENDPOINT}")

    FastAPIInstrumentor.instrument_app(app)


# Fail at startup, not on the first request, when configuration is unusable
get_path_rewriter()
get_origin_policy()

app = FastAPI(title=SERVICE_NAME, docs_url=None, redoc_url=None, openapi_url=None)

if METRICS_ENABLED:
    # Registered before the catch-all proxy route so it is matched first
    Instrumentator().instrument(app).expose(app, include_in_schema=False)
    app_info = Info("fastapi_app_info", "Application Info")
    app_info.info({"app_name": SERVICE_NAME})

configure_tracing(app)

app.include_router(router)


def main():
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
