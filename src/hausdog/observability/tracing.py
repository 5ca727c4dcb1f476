"""OpenTelemetry tracing configuration for Hausdog.

Tracing is off unless HAUSDOG_OTEL_ENABLED=1. When off, `pipeline_span` and
the storage decorator add no overhead beyond an environment lookup.

Environment Variables:
    HAUSDOG_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    HAUSDOG_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    HAUSDOG_OTEL_SERVICE_NAME: Service name for spans (default: "hausdog")
    HAUSDOG_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    HAUSDOG_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP endpoint URL (optional)

Security:
    - Never export API keys, webhook signatures, file contents or raw keys
    - Storage keys are exported as SHA256 digests only
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

HAUSDOG_OTEL_ENABLED_ENV = "HAUSDOG_OTEL_ENABLED"
HAUSDOG_REQUIRE_OTEL_ENV = "HAUSDOG_REQUIRE_OTEL"

_tracer_provider: TracerProvider | None = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and HAUSDOG_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(HAUSDOG_OTEL_ENABLED_ENV, False)


def configure_tracing() -> bool:
    """Configure the global tracer provider. Idempotent.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If HAUSDOG_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider

    if not is_otel_enabled():
        logger.debug("OpenTelemetry tracing disabled (%s not set)", HAUSDOG_OTEL_ENABLED_ENV)
        return False

    if _tracer_provider is not None:
        return True

    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        service_name = os.environ.get("HAUSDOG_OTEL_SERVICE_NAME", "hausdog").strip()
        exporter_type = os.environ.get("HAUSDOG_OTEL_EXPORTER", "otlp").strip()
        endpoint = os.environ.get("HAUSDOG_OTEL_EXPORTER_OTLP_ENDPOINT", "").strip()

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if exporter_type == "console":
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            kwargs: dict[str, Any] = {"endpoint": endpoint} if endpoint else {}
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**kwargs)))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type,
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if _get_env_bool(HAUSDOG_REQUIRE_OTEL_ENV, False):
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI application when tracing is enabled."""
    if not is_otel_enabled():
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


@contextmanager
def pipeline_span(name: str, attributes: dict[str, Any]) -> Generator[None, None, None]:
    """Wrap a block in a span when tracing is enabled.

    Exceptions are recorded on the span and re-raised.
    """
    if not is_otel_enabled():
        yield
        return

    tracer = trace.get_tracer("hausdog.pipeline")
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            raise
