"""Tests for the review gate and signed artifact links."""

from __future__ import annotations

import pytest

from hausdog.errors import AuthorizationError, NotFoundError, StateError, ValidationError
from hausdog.models.document import ProcessingStatus
from hausdog.models.resolution import ResolutionAction
from hausdog.pipeline.orchestrator import PipelineJob
from hausdog.pipeline.state_machine import transition_document
from hausdog.services.artifacts import ArtifactService
from hausdog.services.review.gate import ReviewGate
from hausdog.storage.errors import ObjectNotFoundError
from tests.fixtures.pipeline import FURNACE_ID, OTHER_OWNER_ID, OWNER_ID


@pytest.fixture
def gate(repo, store) -> ReviewGate:
    return ReviewGate(repo, store)


@pytest.fixture
def ready_document(orchestrator, make_document):
    """A document the deterministic pipeline attached to the furnace."""
    document = make_document()
    orchestrator.run_attempt(PipelineJob(document_id=document.id, owner_id=OWNER_ID))
    return document


class TestConfirmAndDiscard:
    """Only ready_for_review documents can be confirmed or discarded."""

    def test_confirm(self, gate, repo, ready_document) -> None:
        before = repo.get(ready_document.id)

        confirmed = gate.confirm(OWNER_ID, ready_document.id)

        assert confirmed.status == ProcessingStatus.CONFIRMED
        assert confirmed.processed_at == before.processed_at
        assert confirmed.resolve_data == before.resolve_data

    def test_second_confirm_is_rejected(self, gate, repo, ready_document) -> None:
        """Confirming twice fails and changes nothing."""
        first = gate.confirm(OWNER_ID, ready_document.id)

        with pytest.raises(StateError) as exc_info:
            gate.confirm(OWNER_ID, ready_document.id)

        assert exc_info.value.current == "confirmed"
        assert repo.get(ready_document.id) == first

    def test_discard(self, gate, ready_document) -> None:
        discarded = gate.discard(OWNER_ID, ready_document.id)
        assert discarded.status == ProcessingStatus.DISCARDED
        assert discarded.processed_at is not None

    def test_pending_cannot_be_confirmed(self, gate, make_document) -> None:
        document = make_document()
        with pytest.raises(StateError):
            gate.confirm(OWNER_ID, document.id)

    def test_foreign_owner(self, gate, ready_document) -> None:
        with pytest.raises(AuthorizationError):
            gate.confirm(OTHER_OWNER_ID, ready_document.id)

    def test_missing(self, gate) -> None:
        with pytest.raises(NotFoundError):
            gate.discard(OWNER_ID, "missing")


class TestProposal:
    def test_ready_document(self, gate, ready_document) -> None:
        proposal = gate.proposal(OWNER_ID, ready_document.id)

        assert proposal.document_id == ready_document.id
        assert proposal.action == ResolutionAction.ATTACH_TO_ITEM
        assert proposal.target_item_id == FURNACE_ID
        assert proposal.suggested_item_name == "Carrier 59SC5A"

    def test_not_ready(self, gate, make_document) -> None:
        document = make_document()
        with pytest.raises(StateError):
            gate.proposal(OWNER_ID, document.id)


class TestUpdateStatus:
    """Generic status updates follow the transition table."""

    def test_legal_edge_with_retry(self, gate, make_document) -> None:
        document = make_document()
        gate.update_status(OWNER_ID, document.id, ProcessingStatus.PROCESSING)

        updated = gate.update_status(
            OWNER_ID, document.id, ProcessingStatus.PENDING, retry_count=1
        )

        assert updated.status == ProcessingStatus.PENDING
        assert updated.retry_count == 1

    def test_illegal_edge(self, gate, repo, make_document) -> None:
        document = make_document()
        with pytest.raises(StateError):
            gate.update_status(OWNER_ID, document.id, ProcessingStatus.CONFIRMED)
        assert repo.get(document.id) == document

    def test_retry_count_cannot_decrease(self, gate, repo, make_document) -> None:
        document = make_document(retry_count=2)
        transition_document(repo, document, ProcessingStatus.PROCESSING)

        with pytest.raises(ValidationError):
            gate.update_status(OWNER_ID, document.id, ProcessingStatus.PENDING, retry_count=1)


class TestDelete:
    def test_removes_record_and_artifact(self, gate, repo, store, make_document) -> None:
        document = make_document()

        gate.delete(OWNER_ID, document.id)

        assert repo.get(document.id) is None
        with pytest.raises(ObjectNotFoundError):
            store.get(document.storage_path)

    def test_artifact_failure_does_not_fail_delete(
        self, gate, repo, store, make_document
    ) -> None:
        """The record is gone even if the artifact could not be removed."""
        document = make_document()
        store.delete(document.storage_path)

        gate.delete(OWNER_ID, document.id)

        assert repo.get(document.id) is None

    def test_document_without_artifact(self, gate, repo, make_document) -> None:
        document = make_document(data=None)
        gate.delete(OWNER_ID, document.id)
        assert repo.get(document.id) is None

    def test_foreign_owner_keeps_document(self, gate, repo, make_document) -> None:
        document = make_document()
        with pytest.raises(AuthorizationError):
            gate.delete(OTHER_OWNER_ID, document.id)
        assert repo.get(document.id) is not None


class TestListDocuments:
    def test_owner_scoped(self, gate, make_document) -> None:
        mine = make_document()
        make_document(owner_id=OTHER_OWNER_ID, property_id=None)

        assert [d.id for d in gate.list_documents(OWNER_ID)] == [mine.id]

    def test_status_filter(self, gate, ready_document, make_document) -> None:
        make_document()
        ready = gate.list_documents(OWNER_ID, status=ProcessingStatus.READY_FOR_REVIEW)
        assert [d.id for d in ready] == [ready_document.id]


class TestArtifactService:
    """Signed URLs are only issued under the caller's own prefix."""

    def test_own_path(self, store, make_document) -> None:
        document = make_document()
        service = ArtifactService(store, expires_in=120)

        signed = service.signed_url(OWNER_ID, document.storage_path)

        assert signed.expires_in == 120
        assert store.verify_signed_url(signed.signed_url) == document.storage_path

    @pytest.mark.parametrize(
        "path",
        [
            "owner-2/artifact-1/plate.pdf",
            "owner-1-evil/artifact-1/plate.pdf",
            "owner-1/../owner-2/plate.pdf",
            "plate.pdf",
        ],
    )
    def test_foreign_path(self, store, path: str) -> None:
        with pytest.raises(AuthorizationError):
            ArtifactService(store).signed_url(OWNER_ID, path)
