"""Tests for pipeline attempts, regression and retry bookkeeping."""

from __future__ import annotations

import json

import pytest

from hausdog.errors import (
    AuthorizationError,
    ExternalServiceError,
    NotFoundError,
    StateError,
    ValidationError,
)
from hausdog.models.document import ProcessingStatus
from hausdog.models.extraction import DocumentKind
from hausdog.models.inventory import InventoryItem
from hausdog.models.resolution import ResolutionAction
from hausdog.pipeline.orchestrator import (
    AttemptOutcome,
    JobVariant,
    PipelineJob,
    PipelineOrchestrator,
)
from hausdog.pipeline.state_machine import transition_document
from hausdog.services.extraction.classifiers import DeterministicClassifier
from hausdog.services.extraction.service import ExtractionService
from hausdog.services.resolution.reasoners import DeterministicReasoner
from hausdog.services.resolution.service import ResolutionService
from hausdog.services.review.gate import ReviewGate
from tests.fixtures.pipeline import (
    FURNACE_ID,
    OTHER_OWNER_ID,
    OTHER_PROPERTY_ID,
    OWNER_ID,
    UNKNOWN_PLATE_TEXT,
    WATER_HEATER_ID,
)

RECEIPT_JSON = json.dumps(
    {
        "documentType": "receipt",
        "confidence": 0.92,
        "rawText": "HOME DEPOT TOTAL 1299.00",
        "extracted": {"vendor": "Home Depot", "price": 1299.0},
        "suggestedItemName": "Dishwasher",
        "suggestedCategory": "appliance",
    }
)


class StaticClassifier:
    def __init__(self, response: str) -> None:
        self.response = response
        self.calls = 0

    def classify(self, data, mime_type, *, system_prompt, user_prompt) -> str:
        self.calls += 1
        return self.response


class FailingClassifier:
    def __init__(self) -> None:
        self.calls = 0

    def classify(self, data, mime_type, *, system_prompt, user_prompt) -> str:
        self.calls += 1
        raise ExternalServiceError("vision model unavailable", service="gemini")


class StaticReasoner:
    def __init__(self, response: str) -> None:
        self.response = response
        self.prompts: list[str] = []

    def reason(self, *, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append(user_prompt)
        return self.response


class FailingReasoner:
    def __init__(self) -> None:
        self.calls = 0

    def reason(self, *, system_prompt: str, user_prompt: str) -> str:
        self.calls += 1
        raise ExternalServiceError("reasoning model unavailable", service="anthropic")


def _orchestrator(repo, store, inventory, classifier=None, reasoner=None, **kwargs):
    return PipelineOrchestrator(
        repo,
        store,
        inventory,
        ExtractionService(classifier or DeterministicClassifier()),
        ResolutionService(reasoner or DeterministicReasoner()),
        **kwargs,
    )


def _job(document, **kwargs) -> PipelineJob:
    return PipelineJob(
        document_id=document.id,
        owner_id=document.owner_id,
        property_id=document.property_id,
        **kwargs,
    )


class TestSuccessfulAttempt:
    """Both stages succeed and the document waits for review."""

    def test_receipt_becomes_new_item_proposal(self, repo, store, inventory, make_document) -> None:
        """Scenario: receipt extraction plus NEW_ITEM resolution."""
        orchestrator = _orchestrator(
            repo,
            store,
            inventory,
            classifier=StaticClassifier(RECEIPT_JSON),
            reasoner=StaticReasoner('{"action": "NEW_ITEM", "confidence": 0.4}'),
        )
        document = make_document()

        outcome = orchestrator.run_attempt(_job(document))

        stored = repo.get(document.id)
        assert outcome == AttemptOutcome.SUCCEEDED
        assert stored.status == ProcessingStatus.READY_FOR_REVIEW
        assert stored.extracted_data.document_type == DocumentKind.RECEIPT
        assert stored.extracted_data.confidence == 0.92
        assert stored.resolve_data.action == ResolutionAction.NEW_ITEM
        assert stored.processed_at is not None
        assert stored.retry_count == 0

    def test_attach_proposal_exposes_target(self, repo, store, inventory, make_document) -> None:
        """Scenario: ATTACH_TO_ITEM names the item the reviewer sees."""
        reasoner = StaticReasoner(
            json.dumps(
                {"action": "ATTACH_TO_ITEM", "matchedItemId": FURNACE_ID, "confidence": 0.85}
            )
        )
        orchestrator = _orchestrator(repo, store, inventory, reasoner=reasoner)
        document = make_document()

        orchestrator.run_attempt(_job(document))
        proposal = ReviewGate(repo, store).proposal(OWNER_ID, document.id)

        assert proposal.action == ResolutionAction.ATTACH_TO_ITEM
        assert proposal.target_item_id == FURNACE_ID
        assert proposal.confidence == 0.85

    def test_inventory_is_scoped_to_property(self, repo, store, inventory, make_document) -> None:
        """Items of other properties never reach the resolution prompt."""
        inventory.add_item(
            InventoryItem(id="item-elsewhere", property_id=OTHER_PROPERTY_ID, name="Boiler")
        )
        reasoner = StaticReasoner('{"action": "NEW_ITEM", "confidence": 0.4}')
        orchestrator = _orchestrator(repo, store, inventory, reasoner=reasoner)
        document = make_document()

        orchestrator.run_attempt(_job(document))

        assert FURNACE_ID in reasoner.prompts[0]
        assert WATER_HEATER_ID in reasoner.prompts[0]
        assert "item-elsewhere" not in reasoner.prompts[0]

    def test_deterministic_backends_attach_furnace_plate(
        self, orchestrator, repo, make_document
    ) -> None:
        document = make_document()

        orchestrator.run_attempt(_job(document))

        stored = repo.get(document.id)
        assert stored.extracted_data.document_type == DocumentKind.EQUIPMENT_PLATE
        assert stored.resolve_data.action == ResolutionAction.ATTACH_TO_ITEM
        assert stored.resolve_data.matched_item_id == FURNACE_ID

    def test_unknown_plate_is_new_item(self, orchestrator, repo, make_document) -> None:
        document = make_document(data=UNKNOWN_PLATE_TEXT)
        orchestrator.run_attempt(_job(document))
        assert repo.get(document.id).resolve_data.action == ResolutionAction.NEW_ITEM


class TestResolveOnly:
    """Email bodies skip extraction and resolve the text stored on the record."""

    def test_email_body_job(self, repo, store, inventory, make_document) -> None:
        classifier = StaticClassifier(RECEIPT_JSON)
        reasoner = StaticReasoner('{"action": "NEW_ITEM", "confidence": 0.3}')
        orchestrator = _orchestrator(repo, store, inventory, classifier, reasoner)
        document = make_document(
            data=None, content_type="text/plain", extracted_text="Furnace serviced today."
        )

        orchestrator.run_attempt(_job(document, variant=JobVariant.RESOLVE_ONLY))

        stored = repo.get(document.id)
        assert classifier.calls == 0
        assert stored.status == ProcessingStatus.READY_FOR_REVIEW
        assert stored.extracted_data.document_type == DocumentKind.EMAIL
        assert stored.extracted_data.raw_text == "Furnace serviced today."
        assert stored.extracted_text == "Furnace serviced today."
        assert '"email"' in reasoner.prompts[0]

    def test_body_document_recovers_from_a_plain_job(
        self, repo, store, inventory, make_document
    ) -> None:
        """A stranded body document re-dispatched as FULL still resolves its text."""
        classifier = StaticClassifier(RECEIPT_JSON)
        orchestrator = _orchestrator(repo, store, inventory, classifier)
        document = make_document(
            data=None, content_type="text/plain", extracted_text="Water heater flushed."
        )

        outcome = orchestrator.run_attempt(PipelineJob(document_id=document.id, owner_id=OWNER_ID))

        assert outcome == AttemptOutcome.SUCCEEDED
        assert classifier.calls == 0
        assert repo.get(document.id).extracted_data.raw_text == "Water heater flushed."

    def test_resolve_only_without_text(self, orchestrator, repo, make_document) -> None:
        document = make_document(data=None, content_type="text/plain")

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.run_attempt(_job(document, variant=JobVariant.RESOLVE_ONLY))

        assert exc_info.value.reason == "missing_artifact"
        assert repo.get(document.id).retry_count == 1

    def test_payload_round_trip(self) -> None:
        job = PipelineJob(
            document_id="d", owner_id="o", property_id="p", variant=JobVariant.RESOLVE_ONLY
        )
        assert job.to_payload() == {
            "document_id": "d",
            "owner_id": "o",
            "property_id": "p",
            "variant": "resolve_only",
        }
        assert PipelineJob.from_payload(job.to_payload()) == job
        assert job.workflow_id == "document-pipeline-d"

    def test_extraction_fills_extracted_text(self, repo, store, inventory, make_document) -> None:
        orchestrator = _orchestrator(repo, store, inventory, StaticClassifier(RECEIPT_JSON))
        document = make_document()

        orchestrator.run_attempt(_job(document))

        assert repo.get(document.id).extracted_text == "HOME DEPOT TOTAL 1299.00"


class TestFailedAttempt:
    """Failures regress the document with retry bookkeeping and re-raise."""

    def test_extraction_failure_regresses_to_pending(
        self, repo, store, inventory, make_document
    ) -> None:
        """Scenario: extraction raises mid-attempt."""
        orchestrator = _orchestrator(repo, store, inventory, classifier=FailingClassifier())
        document = make_document()

        with pytest.raises(ExternalServiceError):
            orchestrator.run_attempt(_job(document))

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.PENDING
        assert stored.retry_count == 1
        assert stored.extracted_data is None
        assert stored.processed_at is None

    def test_budget_exhaustion_fails_document(self, repo, store, inventory, make_document) -> None:
        orchestrator = _orchestrator(repo, store, inventory, classifier=FailingClassifier())
        document = make_document()

        for _ in range(3):
            with pytest.raises(ExternalServiceError):
                orchestrator.run_attempt(_job(document))

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.FAILED
        assert stored.retry_count == 3
        assert orchestrator.run_attempt(_job(document)) == AttemptOutcome.SKIPPED

    def test_resolution_failure_keeps_extraction(
        self, repo, store, inventory, make_document
    ) -> None:
        """A retry after a resolution failure reuses the stored extraction."""
        classifier = StaticClassifier(RECEIPT_JSON)
        orchestrator = _orchestrator(repo, store, inventory, classifier, FailingReasoner())
        document = make_document()

        with pytest.raises(ExternalServiceError):
            orchestrator.run_attempt(_job(document))

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.PENDING
        assert stored.extracted_data is not None
        assert stored.resolve_data is None

        retry = _orchestrator(
            repo,
            store,
            inventory,
            classifier,
            StaticReasoner('{"action": "NEW_ITEM", "confidence": 0.4}'),
        )
        assert retry.run_attempt(_job(document), attempt=2) == AttemptOutcome.SUCCEEDED
        assert classifier.calls == 1
        assert repo.get(document.id).retry_count == 1

    def test_missing_artifact(self, orchestrator, repo, make_document) -> None:
        document = make_document(data=None)

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.run_attempt(_job(document))

        assert exc_info.value.reason == "missing_artifact"
        assert repo.get(document.id).retry_count == 1

    def test_max_attempts_one(self, repo, store, inventory, make_document) -> None:
        orchestrator = _orchestrator(
            repo, store, inventory, classifier=FailingClassifier(), max_attempts=1
        )
        document = make_document()

        with pytest.raises(ExternalServiceError):
            orchestrator.run_attempt(_job(document))

        assert repo.get(document.id).status == ProcessingStatus.FAILED

    def test_invalid_max_attempts(self, repo, store, inventory) -> None:
        with pytest.raises(ValueError):
            _orchestrator(repo, store, inventory, max_attempts=0)


class TestAttemptGuards:
    """Attempts only run on pending documents the job owner owns."""

    def test_unknown_document(self, orchestrator) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.run_attempt(PipelineJob(document_id="missing", owner_id=OWNER_ID))

    def test_foreign_owner(self, orchestrator, make_document) -> None:
        document = make_document()
        with pytest.raises(AuthorizationError):
            orchestrator.run_attempt(PipelineJob(document_id=document.id, owner_id=OTHER_OWNER_ID))

    def test_already_processing_is_skipped(self, orchestrator, repo, make_document) -> None:
        document = make_document()
        transition_document(repo, document, ProcessingStatus.PROCESSING)

        assert orchestrator.run_attempt(_job(document)) == AttemptOutcome.SKIPPED
        assert repo.get(document.id).status == ProcessingStatus.PROCESSING

    def test_finished_document_is_skipped(self, orchestrator, repo, make_document) -> None:
        document = make_document()
        orchestrator.run_attempt(_job(document))

        assert orchestrator.run_attempt(_job(document)) == AttemptOutcome.SKIPPED
        assert repo.get(document.id).status == ProcessingStatus.READY_FOR_REVIEW


class TestReclaimAbandoned:
    def test_processing_document_is_regressed(self, orchestrator, repo, make_document) -> None:
        document = make_document()
        transition_document(repo, document, ProcessingStatus.PROCESSING)

        assert orchestrator.reclaim_abandoned(_job(document)) is True

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.PENDING
        assert stored.retry_count == 1

    def test_pending_document_untouched(self, orchestrator, repo, make_document) -> None:
        document = make_document()
        assert orchestrator.reclaim_abandoned(_job(document)) is False
        assert repo.get(document.id) == document


class ReclaimingClassifier:
    """Reclaims the document and lets a second attempt claim it mid-extraction."""

    def __init__(self, repo, response: str) -> None:
        self.repo = repo
        self.response = response
        self.orchestrator: PipelineOrchestrator | None = None
        self.job: PipelineJob | None = None

    def classify(self, data, mime_type, *, system_prompt, user_prompt) -> str:
        self.orchestrator.reclaim_abandoned(self.job)
        reclaimed = self.repo.get(self.job.document_id)
        transition_document(self.repo, reclaimed, ProcessingStatus.PROCESSING)
        return self.response


class TestSupersededAttempt:
    """A reclaimed attempt can neither write stage output nor regress again."""

    def test_late_stage_write_is_refused(self, repo, store, inventory, make_document) -> None:
        classifier = ReclaimingClassifier(repo, RECEIPT_JSON)
        orchestrator = _orchestrator(repo, store, inventory, classifier)
        document = make_document()
        classifier.orchestrator = orchestrator
        classifier.job = _job(document)

        with pytest.raises(StateError):
            orchestrator.run_attempt(classifier.job)

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.PROCESSING
        assert stored.retry_count == 1
        assert stored.extracted_data is None

    def test_stale_snapshot_cannot_transition(self, repo, make_document) -> None:
        document = make_document()
        claimed = transition_document(repo, document, ProcessingStatus.PROCESSING)
        transition_document(repo, claimed, ProcessingStatus.PENDING, retry_count=1)
        transition_document(repo, repo.get(document.id), ProcessingStatus.PROCESSING)

        with pytest.raises(StateError):
            transition_document(repo, claimed, ProcessingStatus.READY_FOR_REVIEW)

        assert repo.get(document.id).status == ProcessingStatus.PROCESSING
