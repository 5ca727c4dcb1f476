"""Hausdog observability: OpenTelemetry tracing."""
