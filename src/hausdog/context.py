"""Application context: every collaborator, constructed once at startup.

`build_context(config)` wires backends from configuration. Tests pass
overrides to swap any collaborator (repository, store, classifier,
reasoner, scheduler, email provider) without touching the environment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from hausdog.config import (
    ANTHROPIC_API_KEY_ENV,
    GEMINI_API_KEY_ENV,
    SUPABASE_SERVICE_ROLE_KEY_ENV,
    SUPABASE_URL_ENV,
    AppConfig,
)
from hausdog.persistence.db import get_engine
from hausdog.persistence.repositories.documents import (
    DocumentRepository,
    InMemoryDocumentRepository,
    SqlDocumentRepository,
)
from hausdog.persistence.repositories.inventory import (
    InMemoryInventory,
    InventoryReader,
    PropertyDirectory,
    SqlInventory,
)
from hausdog.pipeline.orchestrator import PipelineOrchestrator
from hausdog.pipeline.scheduler import Scheduler, build_scheduler
from hausdog.services.artifacts import ArtifactService
from hausdog.services.extraction.classifiers import (
    DeterministicClassifier,
    DocumentClassifier,
    GeminiClassifier,
)
from hausdog.services.extraction.service import ExtractionService
from hausdog.services.ingestion.email import EmailIngestService
from hausdog.services.ingestion.email_provider import EmailProvider, ResendClient
from hausdog.services.ingestion.upload import UploadService
from hausdog.services.resolution.reasoners import (
    AnthropicReasoner,
    DeterministicReasoner,
    InventoryReasoner,
)
from hausdog.services.resolution.service import ResolutionService
from hausdog.services.review.gate import ReviewGate
from hausdog.storage.filesystem_store import FilesystemObjectStore
from hausdog.storage.object_store import ObjectStore
from hausdog.storage.supabase_store import SupabaseObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContext:
    """Process-wide collaborators, passed by reference into each stage."""

    config: AppConfig
    documents: DocumentRepository
    store: ObjectStore
    inventory: InventoryReader
    properties: PropertyDirectory
    classifier: DocumentClassifier
    reasoner: InventoryReasoner
    orchestrator: PipelineOrchestrator
    scheduler: Scheduler
    email_provider: EmailProvider | None
    uploads: UploadService
    email_ingest: EmailIngestService
    review: ReviewGate
    artifacts: ArtifactService


def build_object_store(config: AppConfig) -> ObjectStore:
    """Construct the configured object store backend.

    Raises:
        ConfigError: If the supabase backend is selected without credentials.
    """
    if config.object_store_backend == "supabase":
        return SupabaseObjectStore(
            config.require(config.supabase_url, SUPABASE_URL_ENV, "supabase storage"),
            config.require(
                config.supabase_key, SUPABASE_SERVICE_ROLE_KEY_ENV, "supabase storage"
            ),
            config.storage_bucket,
        )
    return FilesystemObjectStore(config.resolved_base_dir())


def build_classifier(config: AppConfig) -> DocumentClassifier:
    if config.extract_backend == "gemini":
        return GeminiClassifier(
            config.require(config.gemini_api_key, GEMINI_API_KEY_ENV, "gemini extraction"),
            config.gemini_model,
        )
    return DeterministicClassifier()


def build_reasoner(config: AppConfig) -> InventoryReasoner:
    if config.resolve_backend == "anthropic":
        return AnthropicReasoner(
            config.require(
                config.anthropic_api_key, ANTHROPIC_API_KEY_ENV, "anthropic resolution"
            ),
            config.anthropic_model,
        )
    return DeterministicReasoner()


def build_context(config: AppConfig | None = None, **overrides: Any) -> AppContext:
    """Wire every collaborator from configuration.

    Args:
        config: Resolved configuration; read from the environment when None.
        **overrides: Replacement collaborators by AppContext field name
            (documents, store, inventory, properties, classifier, reasoner,
            scheduler, email_provider).

    Returns:
        The application context.

    Raises:
        ConfigError: If a selected backend is missing a required setting.
    """
    config = config or AppConfig.from_env()

    documents: DocumentRepository
    inventory: Any
    if "documents" in overrides:
        documents = overrides["documents"]
    elif config.database_url:
        documents = SqlDocumentRepository(get_engine(config.database_url))
    else:
        logger.warning("HAUSDOG_DATABASE_URL not set; using in-memory document repository")
        documents = InMemoryDocumentRepository()

    if "inventory" in overrides:
        inventory = overrides["inventory"]
    elif config.database_url:
        inventory = SqlInventory(get_engine(config.database_url))
    else:
        inventory = InMemoryInventory()
    properties: PropertyDirectory = overrides.get("properties", inventory)

    store = overrides.get("store") or build_object_store(config)
    classifier = overrides.get("classifier") or build_classifier(config)
    reasoner = overrides.get("reasoner") or build_reasoner(config)

    orchestrator = PipelineOrchestrator(
        documents,
        store,
        inventory,
        ExtractionService(classifier),
        ResolutionService(reasoner),
        max_attempts=config.max_attempts,
    )
    scheduler = overrides.get("scheduler") or build_scheduler(config, orchestrator)

    if "email_provider" in overrides:
        email_provider = overrides["email_provider"]
    elif config.resend_api_key:
        email_provider = ResendClient(config.resend_api_key)
    else:
        email_provider = None

    logger.info(
        "Context built: store=%s extract=%s resolve=%s scheduler=%s",
        store.backend_name,
        config.extract_backend,
        config.resolve_backend,
        scheduler.name,
    )

    return AppContext(
        config=config,
        documents=documents,
        store=store,
        inventory=inventory,
        properties=properties,
        classifier=classifier,
        reasoner=reasoner,
        orchestrator=orchestrator,
        scheduler=scheduler,
        email_provider=email_provider,
        uploads=UploadService(documents, store, scheduler, properties=properties),
        email_ingest=EmailIngestService(
            documents,
            store,
            scheduler,
            properties,
            email_provider,
            webhook_secret=config.resend_webhook_secret,
        ),
        review=ReviewGate(documents, store),
        artifacts=ArtifactService(store, expires_in=config.signed_url_ttl_seconds),
    )
