"""Tests for inline, Temporal and fallback scheduling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from temporalio.exceptions import WorkflowAlreadyStartedError

from hausdog.config import AppConfig
from hausdog.errors import ExternalServiceError
from hausdog.models.document import ProcessingStatus
from hausdog.pipeline.orchestrator import PipelineJob, PipelineOrchestrator
from hausdog.pipeline.scheduler import (
    DispatchError,
    FallbackScheduler,
    InlineScheduler,
    TemporalScheduler,
    backoff_seconds,
    build_scheduler,
)
from hausdog.services.extraction.classifiers import DeterministicClassifier
from hausdog.services.extraction.service import ExtractionService
from hausdog.services.resolution.reasoners import DeterministicReasoner
from hausdog.services.resolution.service import ResolutionService
from tests.fixtures.pipeline import OTHER_OWNER_ID, RecordingScheduler


class FlakyClassifier:
    """Fails a fixed number of times, then answers like the deterministic one."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0
        self._delegate = DeterministicClassifier()

    def classify(self, data, mime_type, *, system_prompt, user_prompt) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ExternalServiceError("vision model timed out", service="gemini")
        return self._delegate.classify(data, mime_type)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RefusingScheduler(RecordingScheduler):
    @property
    def name(self) -> str:
        return "refusing"

    async def dispatch(self, job: PipelineJob) -> None:
        self.jobs.append(job)
        raise DispatchError("queue unavailable", document_id=job.document_id)


def _flaky_orchestrator(repo, store, inventory, failures: int) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        repo,
        store,
        inventory,
        ExtractionService(FlakyClassifier(failures)),
        ResolutionService(DeterministicReasoner()),
    )


def _job(document) -> PipelineJob:
    return PipelineJob(
        document_id=document.id, owner_id=document.owner_id, property_id=document.property_id
    )


class TestBackoff:
    def test_schedule(self) -> None:
        """Delays double from one second and stop growing at ten."""
        assert [backoff_seconds(n) for n in range(1, 7)] == [1, 2, 4, 8, 10, 10]


class TestInlineScheduler:
    """Inline execution retries failed attempts with backoff."""

    def test_success_on_first_attempt(self, orchestrator, repo, make_document) -> None:
        sleep = RecordingSleep()
        document = make_document()

        asyncio.run(InlineScheduler(orchestrator, sleep=sleep).dispatch(_job(document)))

        assert repo.get(document.id).status == ProcessingStatus.READY_FOR_REVIEW
        assert sleep.delays == []

    def test_recovers_after_transient_failures(
        self, repo, store, inventory, make_document
    ) -> None:
        sleep = RecordingSleep()
        document = make_document()
        scheduler = InlineScheduler(
            _flaky_orchestrator(repo, store, inventory, failures=2), sleep=sleep
        )

        asyncio.run(scheduler.dispatch(_job(document)))

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.READY_FOR_REVIEW
        assert stored.retry_count == 2
        assert sleep.delays == [1, 2]

    def test_exhaustion_leaves_document_failed(
        self, repo, store, inventory, make_document
    ) -> None:
        sleep = RecordingSleep()
        document = make_document()
        scheduler = InlineScheduler(
            _flaky_orchestrator(repo, store, inventory, failures=5), sleep=sleep
        )

        asyncio.run(scheduler.dispatch(_job(document)))

        stored = repo.get(document.id)
        assert stored.status == ProcessingStatus.FAILED
        assert stored.retry_count == 3
        assert sleep.delays == [1, 2]

    def test_foreign_owner_is_not_retried(self, orchestrator, repo, make_document) -> None:
        sleep = RecordingSleep()
        document = make_document()
        job = PipelineJob(document_id=document.id, owner_id=OTHER_OWNER_ID)

        asyncio.run(InlineScheduler(orchestrator, sleep=sleep).dispatch(job))

        assert repo.get(document.id).status == ProcessingStatus.PENDING
        assert sleep.delays == []

    def test_missing_document_is_not_raised(self, orchestrator) -> None:
        job = PipelineJob(document_id="missing", owner_id="owner-1")
        asyncio.run(InlineScheduler(orchestrator, sleep=RecordingSleep()).dispatch(job))


class TestTemporalScheduler:
    """Workflow starts go through the injected client."""

    def _client(self, side_effect=None) -> MagicMock:
        client = MagicMock()
        client.start_workflow = AsyncMock(side_effect=side_effect)
        return client

    def test_starts_workflow_per_document(self) -> None:
        client = self._client()
        scheduler = TemporalScheduler("localhost:7233", "default", "hausdog-q", client=client)
        job = PipelineJob(document_id="doc-9", owner_id="owner-1", property_id="prop-1")

        asyncio.run(scheduler.dispatch(job))

        client.start_workflow.assert_awaited_once()
        args, kwargs = client.start_workflow.call_args
        assert args[1] == job.to_payload()
        assert kwargs["id"] == "document-pipeline-doc-9"
        assert kwargs["task_queue"] == "hausdog-q"

    def test_already_started_is_not_an_error(self) -> None:
        client = self._client(
            WorkflowAlreadyStartedError("document-pipeline-doc-9", "DocumentPipelineWorkflow")
        )
        scheduler = TemporalScheduler("localhost:7233", "default", "q", client=client)

        asyncio.run(scheduler.dispatch(PipelineJob(document_id="doc-9", owner_id="owner-1")))

    def test_start_failure_raises_dispatch_error(self) -> None:
        client = self._client(RuntimeError("connection refused"))
        scheduler = TemporalScheduler("localhost:7233", "default", "q", client=client)

        with pytest.raises(DispatchError) as exc_info:
            asyncio.run(scheduler.dispatch(PipelineJob(document_id="doc-9", owner_id="owner-1")))

        assert exc_info.value.document_id == "doc-9"
        assert "RuntimeError" in exc_info.value.message


class TestFallbackScheduler:
    def test_primary_accepts(self) -> None:
        primary, fallback = RecordingScheduler(), RecordingScheduler()
        job = PipelineJob(document_id="doc-1", owner_id="owner-1")

        asyncio.run(FallbackScheduler(primary, fallback).dispatch(job))

        assert primary.jobs == [job]
        assert fallback.jobs == []

    def test_refused_job_runs_on_fallback_once(self) -> None:
        primary, fallback = RefusingScheduler(), RecordingScheduler()
        job = PipelineJob(document_id="doc-1", owner_id="owner-1")

        asyncio.run(FallbackScheduler(primary, fallback).dispatch(job))

        assert primary.jobs == [job]
        assert fallback.jobs == [job]

    def test_name_combines_both(self) -> None:
        assert FallbackScheduler(RefusingScheduler(), RecordingScheduler()).name == (
            "refusing+recording"
        )


class TestBuildScheduler:
    def test_inline_by_default(self, orchestrator) -> None:
        assert build_scheduler(AppConfig(), orchestrator).name == "inline"

    def test_temporal_falls_back_to_inline(self, orchestrator) -> None:
        scheduler = build_scheduler(AppConfig(scheduler="temporal"), orchestrator)
        assert scheduler.name == "temporal+inline"
