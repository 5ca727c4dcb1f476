"""Review gate: the owner's confirm/discard step and document management.

Confirm and discard are only legal from ready_for_review; anything else is
a StateError and the document is left untouched. Deletion is allowed from
any status and releases the artifact on a best-effort basis.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict

from hausdog.errors import AuthorizationError, NotFoundError, StateError
from hausdog.models.document import Document, ProcessingStatus
from hausdog.models.extraction import DocumentKind, ItemCategory
from hausdog.models.resolution import EventType, ResolutionAction
from hausdog.persistence.repositories.documents import DEFAULT_LIST_LIMIT, DocumentRepository
from hausdog.pipeline.state_machine import transition_document
from hausdog.storage.errors import ObjectStorageError
from hausdog.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class ReviewProposal(BaseModel):
    """What the pipeline proposes for a document awaiting review."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_type: DocumentKind
    action: ResolutionAction
    target_item_id: str | None
    confidence: float
    reasoning: str
    suggested_item_name: str | None
    suggested_category: ItemCategory
    suggested_event_type: EventType | None


class ReviewGate:
    """Owner-facing operations on processed documents.

    Args:
        repo: Document repository.
        store: Object store holding artifacts.
    """

    def __init__(self, repo: DocumentRepository, store: ObjectStore) -> None:
        self._repo = repo
        self._store = store

    def get_document(self, owner_id: str, document_id: str) -> Document:
        """Fetch a document the caller owns.

        Raises:
            NotFoundError: If the document does not exist.
            AuthorizationError: If it belongs to another owner.
        """
        document = self._repo.get(document_id)
        if document is None:
            raise NotFoundError("Document not found", owner_id=owner_id, document_id=document_id)
        if document.owner_id != owner_id:
            raise AuthorizationError(
                "Document belongs to another owner",
                owner_id=owner_id,
                document_id=document_id,
            )
        return document

    def list_documents(
        self,
        owner_id: str,
        *,
        status: ProcessingStatus | None = None,
        property_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Document]:
        """List the owner's documents, newest first."""
        return self._repo.list_for_owner(
            owner_id, status=status, property_id=property_id, limit=limit
        )

    def confirm(self, owner_id: str, document_id: str) -> Document:
        """Accept the proposal: ready_for_review -> confirmed.

        Raises:
            StateError: If the document is not ready_for_review, including
                when it is already confirmed.
        """
        document = self.get_document(owner_id, document_id)
        updated = transition_document(self._repo, document, ProcessingStatus.CONFIRMED)
        logger.info("Document %s confirmed", document_id)
        return updated

    def discard(self, owner_id: str, document_id: str) -> Document:
        """Reject the proposal: ready_for_review -> discarded.

        Raises:
            StateError: If the document is not ready_for_review.
        """
        document = self.get_document(owner_id, document_id)
        updated = transition_document(self._repo, document, ProcessingStatus.DISCARDED)
        logger.info("Document %s discarded", document_id)
        return updated

    def update_status(
        self,
        owner_id: str,
        document_id: str,
        status: ProcessingStatus,
        *,
        retry_count: int | None = None,
    ) -> Document:
        """Apply any legal transition, optionally raising retry_count.

        Raises:
            StateError: If the edge is not in the transition table.
            ValidationError: If retry_count is lower than the stored value.
        """
        document = self.get_document(owner_id, document_id)
        return transition_document(self._repo, document, status, retry_count=retry_count)

    def delete(self, owner_id: str, document_id: str) -> None:
        """Delete the record, then try to delete its artifact."""
        document = self.get_document(owner_id, document_id)
        if not self._repo.delete(document_id):
            raise NotFoundError("Document not found", owner_id=owner_id, document_id=document_id)
        logger.info("Document %s deleted", document_id)

        if not document.has_artifact:
            return
        try:
            self._store.delete(document.storage_path)
        except ObjectStorageError as e:
            logger.warning("Artifact for deleted document %s not removed: %s", document_id, e)

    def proposal(self, owner_id: str, document_id: str) -> ReviewProposal:
        """Build the review surface for a ready_for_review document.

        Raises:
            StateError: If the document is not ready_for_review.
        """
        document = self.get_document(owner_id, document_id)
        extraction = document.extracted_data
        resolution = document.resolve_data
        if (
            document.status != ProcessingStatus.READY_FOR_REVIEW
            or extraction is None
            or resolution is None
        ):
            raise StateError(
                "Document is not awaiting review",
                current=document.status.value,
                target=ProcessingStatus.READY_FOR_REVIEW.value,
                owner_id=owner_id,
                document_id=document_id,
            )

        return ReviewProposal(
            document_id=document.id,
            document_type=extraction.document_type,
            action=resolution.action,
            target_item_id=resolution.matched_item_id,
            confidence=resolution.confidence,
            reasoning=resolution.reasoning,
            suggested_item_name=extraction.suggested_item_name,
            suggested_category=extraction.suggested_category,
            suggested_event_type=resolution.suggested_event_type,
        )
