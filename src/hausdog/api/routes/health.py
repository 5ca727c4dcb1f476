"""Liveness endpoint reporting which pipeline backends this process runs with."""

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from hausdog import __version__
from hausdog.api.dependencies import Context

router = APIRouter(tags=["Health"])


class PipelineBackends(BaseModel):
    object_store: str
    extraction: str
    resolution: str
    scheduler: str


class HealthResponse(BaseModel):
    status: str
    version: str
    checked_at: datetime
    backends: PipelineBackends


@router.get("/health", response_model=HealthResponse)
def get_health(context: Context) -> HealthResponse:
    """Unauthenticated; does not contact the database or any provider."""
    return HealthResponse(
        status="ok",
        version=__version__,
        checked_at=datetime.now(UTC),
        backends=PipelineBackends(
            object_store=context.store.backend_name,
            extraction=context.config.extract_backend,
            resolution=context.config.resolve_backend,
            scheduler=context.scheduler.name,
        ),
    )
