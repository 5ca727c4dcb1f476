"""Pytest configuration and fixtures for Hausdog tests.

Collaborators are in-memory or local: an InMemoryDocumentRepository, a
FilesystemObjectStore under tmp_path, the deterministic classifier and
reasoner, and a scheduler that records jobs instead of running them.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from hausdog.api.auth import HAUSDOG_API_KEYS_ENV
from hausdog.models.document import Document, DocumentSource, LinkedToProperty, ProcessingStatus
from hausdog.models.extraction import DocumentKind
from hausdog.models.inventory import InventoryItem, PropertyRef
from hausdog.persistence.repositories.documents import InMemoryDocumentRepository
from hausdog.persistence.repositories.inventory import InMemoryInventory
from hausdog.pipeline.orchestrator import PipelineOrchestrator
from hausdog.services.extraction.classifiers import DeterministicClassifier
from hausdog.services.extraction.service import ExtractionService
from hausdog.services.resolution.reasoners import DeterministicReasoner
from hausdog.services.resolution.service import ResolutionService
from hausdog.storage.filesystem_store import FilesystemObjectStore
from tests.fixtures.pipeline import (
    API_KEY,
    FURNACE_ID,
    FURNACE_PLATE_TEXT,
    INGEST_TOKEN,
    OTHER_API_KEY,
    OTHER_OWNER_ID,
    OTHER_PROPERTY_ID,
    OWNER_ID,
    PROPERTY_ID,
    WATER_HEATER_ID,
    RecordingScheduler,
)


@pytest.fixture
def inventory() -> InMemoryInventory:
    """Two properties with different owners; the first has a furnace and a water heater."""
    inv = InMemoryInventory()
    inv.add_property(
        PropertyRef(
            id=PROPERTY_ID, owner_id=OWNER_ID, name="123 Main St", ingest_token=INGEST_TOKEN
        )
    )
    inv.add_property(
        PropertyRef(
            id=OTHER_PROPERTY_ID,
            owner_id=OTHER_OWNER_ID,
            name="9 Elm Ave",
            ingest_token="9-elm-ave-000000",
        )
    )
    inv.add_item(
        InventoryItem(
            id=FURNACE_ID,
            property_id=PROPERTY_ID,
            name="Basement furnace",
            manufacturer="Carrier",
            model="59SC5A",
            category="hvac",
        )
    )
    inv.add_item(
        InventoryItem(
            id=WATER_HEATER_ID,
            property_id=PROPERTY_ID,
            name="Water heater",
            manufacturer="Rheem",
            model="XE50T10",
            category="plumbing",
            notes="Replaced anode rod 2022",
        )
    )
    return inv


@pytest.fixture
def repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def store(tmp_path: Any) -> FilesystemObjectStore:
    return FilesystemObjectStore(tmp_path / "objects", signing_secret="test-signing-secret")


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def orchestrator(
    repo: InMemoryDocumentRepository,
    store: FilesystemObjectStore,
    inventory: InMemoryInventory,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        repo,
        store,
        inventory,
        ExtractionService(DeterministicClassifier()),
        ResolutionService(DeterministicReasoner()),
    )


@pytest.fixture
def make_document(
    repo: InMemoryDocumentRepository, store: FilesystemObjectStore
) -> Callable[..., Document]:
    """Factory that stores an artifact (if given) and creates a pending document."""
    counter = {"n": 0}

    def _make(
        *,
        data: bytes | None = FURNACE_PLATE_TEXT,
        content_type: str = "application/pdf",
        owner_id: str = OWNER_ID,
        property_id: str | None = PROPERTY_ID,
        status: ProcessingStatus = ProcessingStatus.PENDING,
        **fields: Any,
    ) -> Document:
        counter["n"] += 1
        document_id = f"doc-{counter['n']}"
        storage_path = ""
        if data is not None:
            storage_path = f"{owner_id}/artifact-{counter['n']}/plate.pdf"
            store.put(storage_path, data, content_type=content_type)
        if property_id is not None:
            fields.setdefault("link", LinkedToProperty(property_id=property_id))
        now = datetime.now(UTC)
        document = Document(
            id=document_id,
            owner_id=owner_id,
            filename="plate.pdf",
            storage_path=storage_path,
            content_type=content_type,
            size_bytes=len(data or b""),
            document_type=DocumentKind.OTHER,
            status=status,
            source=DocumentSource.UPLOAD,
            created_at=now,
            updated_at=now,
            **fields,
        )
        return repo.create(document)

    return _make


@pytest.fixture
def api_keys(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Register one API key per test owner."""
    registry = {
        API_KEY: {"owner_id": OWNER_ID, "name": "Owner One"},
        OTHER_API_KEY: {"owner_id": OTHER_OWNER_ID, "name": "Owner Two"},
    }
    monkeypatch.setenv(HAUSDOG_API_KEYS_ENV, json.dumps(registry))
    return {OWNER_ID: API_KEY, OTHER_OWNER_ID: OTHER_API_KEY}
