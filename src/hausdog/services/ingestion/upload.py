"""Upload ingress: validate, store the artifact, record it, start the pipeline."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from hausdog.errors import (
    AuthorizationError,
    ExternalServiceError,
    HausdogError,
    NotFoundError,
)
from hausdog.models.document import Document, DocumentSource, link_from_ids
from hausdog.persistence.repositories.documents import DocumentRepository
from hausdog.persistence.repositories.inventory import PropertyDirectory
from hausdog.pipeline.orchestrator import PipelineJob
from hausdog.pipeline.scheduler import DispatchError, Scheduler
from hausdog.services.ingestion.content_types import (
    infer_document_type,
    resolve_content_type,
    sanitize_filename,
    validate_content_type,
    validate_size,
)
from hausdog.storage.errors import ObjectStorageError
from hausdog.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadRequest:
    """A file submitted by an owner, with an optional link target."""

    owner_id: str
    filename: str
    content_type: str
    data: bytes
    property_id: str | None = None
    system_id: str | None = None
    component_id: str | None = None


def artifact_key(owner_id: str, artifact_id: str, filename: str) -> str:
    """Object store key for an artifact; always scoped to the owner."""
    return f"{owner_id}/{artifact_id}/{filename}"


async def store_and_record(
    repo: DocumentRepository,
    store: ObjectStore,
    document: Document,
    data: bytes,
) -> Document:
    """Upload the artifact, then create its record.

    If the record cannot be created, the uploaded object is removed again and
    the failure propagates.

    Raises:
        ObjectExistsError: If the key is already taken.
        ObjectStorageError: If the upload fails.
        HausdogError: If the record insert fails.
    """
    await asyncio.to_thread(
        store.put, document.storage_path, data, content_type=document.content_type
    )
    try:
        return record_document(repo, document)
    except HausdogError:
        logger.error("Recording document %s failed; removing uploaded artifact", document.id)
        try:
            await asyncio.to_thread(store.delete, document.storage_path)
        except ObjectStorageError as cleanup_error:
            logger.error(
                "Could not remove artifact for document %s: %s", document.id, cleanup_error
            )
        raise


def record_document(repo: DocumentRepository, document: Document) -> Document:
    """Create a Document record, reporting database failures as ExternalServiceError."""
    try:
        return repo.create(document)
    except HausdogError:
        raise
    except Exception as e:
        raise ExternalServiceError(
            "Failed to record document",
            service="database",
            cause=e,
            document_id=document.id,
        ) from e


async def dispatch_job(scheduler: Scheduler, job: PipelineJob) -> None:
    """Hand a job to the scheduler; a refused job leaves the document pending."""
    try:
        await scheduler.dispatch(job)
    except DispatchError as e:
        logger.error("Pipeline dispatch failed for document %s: %s", job.document_id, e.message)


class UploadService:
    """Accepts direct uploads from owners.

    Args:
        repo: Document repository.
        store: Object store for artifacts.
        scheduler: Scheduler that runs the pipeline.
        properties: Optional property directory used to check that a target
            property exists and belongs to the uploader.
    """

    def __init__(
        self,
        repo: DocumentRepository,
        store: ObjectStore,
        scheduler: Scheduler,
        *,
        properties: PropertyDirectory | None = None,
    ) -> None:
        self._repo = repo
        self._store = store
        self._scheduler = scheduler
        self._properties = properties

    async def upload(self, request: UploadRequest) -> Document:
        """Store an artifact, create its pending Document and dispatch the pipeline.

        Validation happens before anything is written.

        Args:
            request: The upload.

        Returns:
            The created Document in status pending.

        Raises:
            ValidationError: Unsupported content type, bad size, or more than
                one link target.
            NotFoundError: If the target property does not exist.
            AuthorizationError: If the target property belongs to someone else.
            ObjectStorageError: If the artifact could not be stored.
        """
        content_type = validate_content_type(
            resolve_content_type(request.content_type, request.filename)
        )
        validate_size(len(request.data))
        link = link_from_ids(request.property_id, request.system_id, request.component_id)
        self._check_property(request.owner_id, request.property_id)

        artifact_id = str(uuid.uuid4())
        filename = sanitize_filename(request.filename)
        now = datetime.now(UTC)
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=request.owner_id,
            link=link,
            filename=filename,
            storage_path=artifact_key(request.owner_id, artifact_id, filename),
            content_type=content_type,
            size_bytes=len(request.data),
            document_type=infer_document_type(content_type, filename),
            source=DocumentSource.UPLOAD,
            created_at=now,
            updated_at=now,
        )

        document = await store_and_record(self._repo, self._store, document, request.data)
        logger.info(
            "Document %s uploaded type=%s size=%d",
            document.id,
            document.document_type.value,
            document.size_bytes,
        )

        await dispatch_job(
            self._scheduler,
            PipelineJob(
                document_id=document.id,
                owner_id=document.owner_id,
                property_id=document.property_id,
            ),
        )
        return document

    def _check_property(self, owner_id: str, property_id: str | None) -> None:
        if property_id is None or self._properties is None:
            return
        prop = self._properties.get_property(property_id)
        if prop is None:
            raise NotFoundError("Property not found", resource="property", owner_id=owner_id)
        if prop.owner_id != owner_id:
            raise AuthorizationError("Property belongs to another owner", owner_id=owner_id)
