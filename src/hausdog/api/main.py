"""Hausdog FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from hausdog import __version__
from hausdog.api.errors import install_exception_handlers
from hausdog.api.middleware import RequestIdMiddleware
from hausdog.api.routes.documents import router as documents_router
from hausdog.api.routes.health import router as health_router
from hausdog.api.routes.webhooks import router as webhooks_router
from hausdog.context import AppContext, build_context
from hausdog.observability.tracing import configure_tracing, instrument_fastapi
from hausdog.services.ingestion.email_provider import ResendClient


def create_app(context: AppContext | None = None) -> FastAPI:
    """Create and configure the Hausdog FastAPI application.

    Args:
        context: Application context. Built from the environment when None.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigError: If the environment selects a backend without its settings.
    """
    context = context or build_context()

    app = FastAPI(
        title="Hausdog API",
        description="Home documentation ingestion, extraction and resolution",
        version=__version__,
    )
    app.state.context = context

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)
    instrument_fastapi(app)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Close the email provider's HTTP client."""
        if isinstance(context.email_provider, ResendClient):
            await context.email_provider.aclose()

    install_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(documents_router)
    app.include_router(webhooks_router)

    return app
