"""Pipeline orchestrator: one attempt at carrying a document to review.

An attempt claims the document (pending -> processing), runs extraction and
resolution in order, persists each stage's output before moving on, and
finally marks the document ready_for_review. Any failure inside the stages
regresses the document with retry bookkeeping and re-raises, so the caller
(inline loop or remote task queue) decides whether another attempt follows.

Regression policy, identical in every execution path:
    retry_count += 1
    status = pending if retry_count < max_attempts else failed

An attempt is identified by the retry_count it claimed the document with.
If the document was reclaimed meanwhile, the attempt's writes are refused
and it does not regress the document a second time.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from hausdog.errors import (
    AuthorizationError,
    ExternalServiceError,
    HausdogError,
    NotFoundError,
    StateError,
    ValidationError,
)
from hausdog.models.document import Document, ProcessingStatus
from hausdog.models.extraction import ExtractionResult
from hausdog.observability.tracing import pipeline_span
from hausdog.persistence.repositories.documents import DocumentRepository
from hausdog.persistence.repositories.inventory import InventoryReader
from hausdog.pipeline.state_machine import transition_document
from hausdog.services.extraction.service import ExtractionService, email_body_extraction
from hausdog.services.resolution.service import ResolutionService, summarize_inventory
from hausdog.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class JobVariant(str, Enum):
    """Which stages a pipeline job runs."""

    FULL = "full"
    RESOLVE_ONLY = "resolve_only"


class AttemptOutcome(str, Enum):
    """Result of an attempt that did not raise."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PipelineJob:
    """Unit of work handed to a scheduler.

    Attributes:
        document_id: Document to process.
        owner_id: Owner the document must belong to.
        property_id: Property that scopes the inventory; None means owner-wide.
        variant: FULL runs extraction then resolution; RESOLVE_ONLY skips
            extraction and resolves the document's stored extracted_text.
    """

    document_id: str
    owner_id: str
    property_id: str | None = None
    variant: JobVariant = JobVariant.FULL

    @property
    def workflow_id(self) -> str:
        return f"document-pipeline-{self.document_id}"

    def to_payload(self) -> dict[str, Any]:
        """Serialize for task-queue transport."""
        payload = asdict(self)
        payload["variant"] = self.variant.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PipelineJob:
        """Rebuild a job from `to_payload` output."""
        return cls(
            document_id=payload["document_id"],
            owner_id=payload["owner_id"],
            property_id=payload.get("property_id"),
            variant=JobVariant(payload.get("variant", JobVariant.FULL.value)),
        )


class PipelineOrchestrator:
    """Runs pipeline attempts against context-held collaborators.

    Args:
        repo: Document repository.
        store: Object store holding artifacts.
        inventory: Inventory reader for resolution context.
        extraction: Extraction stage.
        resolution: Resolution stage.
        max_attempts: Retry budget shared by every scheduler.
    """

    def __init__(
        self,
        repo: DocumentRepository,
        store: ObjectStore,
        inventory: InventoryReader,
        extraction: ExtractionService,
        resolution: ResolutionService,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._repo = repo
        self._store = store
        self._inventory = inventory
        self._extraction = extraction
        self._resolution = resolution
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run_attempt(self, job: PipelineJob, *, attempt: int = 1) -> AttemptOutcome:
        """Run one attempt for `job`.

        Args:
            job: The pipeline job.
            attempt: Attempt number, for logs and spans only.

        Returns:
            SUCCEEDED when the document reached ready_for_review, SKIPPED when
            it was not pending (already claimed, finished or failed).

        Raises:
            NotFoundError: If the document does not exist.
            AuthorizationError: If the document belongs to another owner.
            HausdogError: The stage failure, after the document was regressed.
                Non-Hausdog exceptions are wrapped in ExternalServiceError.
        """
        document = self._load(job)
        if document.status != ProcessingStatus.PENDING:
            logger.info(
                "Skipping document %s attempt=%d: status is %s",
                job.document_id,
                attempt,
                document.status.value,
            )
            return AttemptOutcome.SKIPPED

        try:
            document = transition_document(self._repo, document, ProcessingStatus.PROCESSING)
        except StateError:
            logger.info(
                "Skipping document %s attempt=%d: claimed elsewhere", job.document_id, attempt
            )
            return AttemptOutcome.SKIPPED

        logger.info(
            "Pipeline attempt started document=%s attempt=%d variant=%s",
            job.document_id,
            attempt,
            job.variant.value,
        )

        with pipeline_span(
            "hausdog.pipeline.attempt",
            {
                "hausdog.document_id": job.document_id,
                "hausdog.attempt": attempt,
                "hausdog.variant": job.variant.value,
            },
        ):
            try:
                self._run_stages(job, document)
            except Exception as exc:
                self._regress_after_failure(document, exc)
                if isinstance(exc, HausdogError):
                    raise
                raise ExternalServiceError(
                    f"Pipeline attempt failed: {type(exc).__name__}",
                    service="pipeline",
                    cause=exc,
                    document_id=job.document_id,
                ) from exc

        logger.info("Pipeline attempt succeeded document=%s attempt=%d", job.document_id, attempt)
        return AttemptOutcome.SUCCEEDED

    def reclaim_abandoned(self, job: PipelineJob) -> bool:
        """Regress a document left in processing by an attempt that never returned.

        Returns:
            True if the document was regressed, False if it was not processing.
        """
        document = self._repo.get(job.document_id)
        if document is None or document.status != ProcessingStatus.PROCESSING:
            return False
        logger.warning("Reclaiming abandoned attempt for document %s", job.document_id)
        self._regress(document)
        return True

    def _load(self, job: PipelineJob) -> Document:
        document = self._repo.get(job.document_id)
        if document is None:
            raise NotFoundError("Document not found", document_id=job.document_id)
        if document.owner_id != job.owner_id:
            raise AuthorizationError(
                "Document does not belong to job owner",
                owner_id=job.owner_id,
                document_id=job.document_id,
            )
        return document

    def _run_stages(self, job: PipelineJob, document: Document) -> None:
        claim = document.retry_count
        extraction = self._extract(job, document)
        if document.extracted_data is None:
            document = self._repo.set_extracted_data(
                document.id, extraction, expected_retry_count=claim
            )

        items = self._inventory.list_items(job.owner_id, property_id=job.property_id)
        resolution = self._resolution.resolve(extraction, summarize_inventory(items))
        document = self._repo.set_resolve_data(document.id, resolution, expected_retry_count=claim)

        transition_document(self._repo, document, ProcessingStatus.READY_FOR_REVIEW)

    def _extract(self, job: PipelineJob, document: Document) -> ExtractionResult:
        if document.extracted_data is not None:
            logger.debug("Reusing stored extraction for document %s", document.id)
            return document.extracted_data

        if job.variant == JobVariant.RESOLVE_ONLY or not document.has_artifact:
            if not document.extracted_text:
                raise ValidationError(
                    "Document has neither a stored artifact nor text to resolve",
                    field="storage_path",
                    reason="missing_artifact",
                    document_id=document.id,
                )
            return email_body_extraction(document.extracted_text)

        stored = self._store.get(document.storage_path)
        return self._extraction.extract(stored.body, document.content_type)

    def _regress_after_failure(self, claimed: Document, exc: Exception) -> None:
        document_id = claimed.id
        logger.warning(
            "Pipeline attempt failed document=%s error=%s", document_id, type(exc).__name__
        )
        document = self._repo.get(document_id)
        if document is None or document.status != ProcessingStatus.PROCESSING:
            return
        if document.retry_count != claimed.retry_count:
            logger.info(
                "Not regressing document %s: attempt was superseded (retry_count %d, now %d)",
                document_id,
                claimed.retry_count,
                document.retry_count,
            )
            return
        try:
            self._regress(document)
        except HausdogError as regress_error:
            logger.error(
                "Could not regress document %s after failure: %s", document_id, regress_error
            )

    def _regress(self, document: Document) -> Document:
        retry_count = document.retry_count + 1
        target = (
            ProcessingStatus.PENDING
            if retry_count < self._max_attempts
            else ProcessingStatus.FAILED
        )
        updated = transition_document(
            self._repo,
            document,
            target,
            retry_count=retry_count,
            now=datetime.now(UTC),
        )
        logger.info(
            "Document %s regressed to %s retry_count=%d",
            document.id,
            target.value,
            retry_count,
        )
        return updated
