"""Optional OpenTelemetry tracing for inbound requests and outbound Slack calls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import FastAPI

from headsdown.core.config import Settings

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger("headsdown.api")


@dataclass(frozen=True)
class TracingState:
    enabled: bool
    reason: str  # disabled|missing_endpoint|enabled
    shutdown: Callable[[], None] | None = None


# The global tracer provider can only be installed once per process; later apps reuse it.
_provider: TracerProvider | None = None


def parse_otlp_headers(raw: str) -> dict[str, str]:
    headers: dict[str, str] = {}
    for piece in (p.strip() for p in raw.split(",")):
        if not piece:
            continue
        name, sep, value = piece.partition("=")
        name, value = name.strip(), value.strip()
        if sep and name and value:
            headers[name] = value
        else:
            logger.warning("Ignoring malformed OTLP header entry: %s", piece)
    return headers


def _tracer_provider(settings: Settings, *, endpoint: str) -> TracerProvider:
    global _provider
    if _provider is not None:
        return _provider

    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.OTEL_SERVICE_NAME,
                "service.version": settings.VERSION,
                "deployment.environment": settings.APP_ENV,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.OTEL_TRACE_SAMPLE_RATIO)),
    )
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS) or None,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def setup_tracing(*, app: FastAPI, settings: Settings) -> TracingState:
    if not settings.ENABLE_OTEL_TRACING:
        return TracingState(enabled=False, reason="disabled")

    endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT.strip()
    if not endpoint:
        logger.warning("ENABLE_OTEL_TRACING is set but no OTLP traces endpoint is configured.")
        return TracingState(enabled=False, reason="missing_endpoint")

    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    provider = _tracer_provider(settings, endpoint=endpoint)
    FastAPIInstrumentor.instrument_app(
        app, tracer_provider=provider, excluded_urls=settings.OTEL_EXCLUDED_URLS
    )
    # Process-wide: spans every Slack Web API and response_url call.
    slack_calls = HTTPXClientInstrumentor()
    if not slack_calls.is_instrumented_by_opentelemetry:
        slack_calls.instrument(tracer_provider=provider)
    logger.info("Tracing enabled service=%s endpoint=%s", settings.OTEL_SERVICE_NAME, endpoint)

    def shutdown() -> None:
        FastAPIInstrumentor.uninstrument_app(app)
        if slack_calls.is_instrumented_by_opentelemetry:
            slack_calls.uninstrument()

    return TracingState(enabled=True, reason="enabled", shutdown=shutdown)
