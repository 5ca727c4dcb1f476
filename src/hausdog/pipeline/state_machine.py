"""Document processing status state machine.

States: pending, processing, ready_for_review, confirmed, discarded, failed.
Initial: pending. Terminal: confirmed, discarded.

    pending ---------> processing        (attempt starts)
    processing ------> ready_for_review  (both stages succeeded)
    processing ------> pending           (recoverable failure, attempts remain)
    processing ------> failed            (retry budget exhausted)
    ready_for_review -> confirmed        (review gate)
    ready_for_review -> discarded        (review gate)

Every other pair raises StateError and leaves the document unchanged.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from hausdog.errors import NotFoundError, StateError, ValidationError
from hausdog.models.document import PROCESSED_STATUSES, Document, ProcessingStatus

if TYPE_CHECKING:
    from hausdog.persistence.repositories.documents import DocumentRepository

logger = logging.getLogger(__name__)

INITIAL_STATUS = ProcessingStatus.PENDING

TERMINAL_STATUSES = frozenset({ProcessingStatus.CONFIRMED, ProcessingStatus.DISCARDED})

TRANSITIONS: frozenset[tuple[ProcessingStatus, ProcessingStatus]] = frozenset(
    {
        (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING),
        (ProcessingStatus.PROCESSING, ProcessingStatus.READY_FOR_REVIEW),
        (ProcessingStatus.PROCESSING, ProcessingStatus.PENDING),
        (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED),
        (ProcessingStatus.READY_FOR_REVIEW, ProcessingStatus.CONFIRMED),
        (ProcessingStatus.READY_FOR_REVIEW, ProcessingStatus.DISCARDED),
    }
)


def is_valid_transition(current: ProcessingStatus, target: ProcessingStatus) -> bool:
    """Return True if current -> target is an edge of the state machine."""
    return (current, target) in TRANSITIONS


def check_transition(
    current: ProcessingStatus,
    target: ProcessingStatus,
    *,
    document_id: str | None = None,
) -> None:
    """Validate a transition.

    Raises:
        StateError: If current -> target is not an edge.
    """
    if not is_valid_transition(current, target):
        raise StateError(
            current=current.value,
            target=target.value,
            document_id=document_id,
        )


def processed_at_for(
    target: ProcessingStatus,
    previous: datetime | None,
    now: datetime,
) -> datetime | None:
    """Return the processed_at value a document must carry in `target`.

    Entering ready_for_review stamps `now`; confirm and discard keep the
    original stamp; every other status clears it.
    """
    if target == ProcessingStatus.READY_FOR_REVIEW:
        return now
    if target in PROCESSED_STATUSES:
        return previous if previous is not None else now
    return None


def transition_document(
    repo: DocumentRepository,
    document: Document,
    target: ProcessingStatus,
    *,
    retry_count: int | None = None,
    now: datetime | None = None,
) -> Document:
    """Move a document to `target` with a conditional update.

    The update only applies if the stored status and retry_count still equal
    the snapshot's; a concurrent writer that got there first turns this call
    into a StateError.

    Args:
        repo: Document repository.
        document: Current snapshot of the document.
        target: Requested status.
        retry_count: New retry count, if it changes. Must not decrease.
        now: Clock override for tests.

    Returns:
        The updated document.

    Raises:
        StateError: If the edge is illegal or the stored document moved on.
        ValidationError: If retry_count would decrease.
        NotFoundError: If the document disappeared.
    """
    check_transition(document.status, target, document_id=document.id)

    if retry_count is not None and retry_count < document.retry_count:
        raise ValidationError(
            f"retry_count cannot decrease ({document.retry_count} -> {retry_count})",
            field="retry_count",
            reason="retry_count_decrease",
            document_id=document.id,
        )

    moment = now or datetime.now(UTC)
    updated = repo.transition(
        document.id,
        expected=document.status,
        target=target,
        retry_count=retry_count,
        processed_at=processed_at_for(target, document.processed_at, moment),
        now=moment,
        expected_retry_count=document.retry_count,
    )
    if updated is not None:
        logger.debug(
            "Document %s: %s -> %s", document.id, document.status.value, target.value
        )
        return updated

    stored = repo.get(document.id)
    if stored is None:
        raise NotFoundError("Document not found", document_id=document.id)
    raise StateError(
        f"Document changed concurrently (now {stored.status.value},"
        f" retry_count {stored.retry_count})",
        current=stored.status.value,
        target=target.value,
        document_id=document.id,
    )
