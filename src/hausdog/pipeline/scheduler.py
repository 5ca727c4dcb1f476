"""Schedulers: how a pipeline job gets executed after ingress.

InlineScheduler: runs attempts in a worker thread of this process.
TemporalScheduler: starts a durable workflow on a Temporal task queue.
FallbackScheduler: uses the primary scheduler, and runs the job inline once
    if the primary could not enqueue it.

Both execution paths run the same PipelineOrchestrator.run_attempt, so the
retry budget and regression policy do not depend on where a job runs.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from hausdog.errors import AuthorizationError, HausdogError, NotFoundError
from hausdog.pipeline.orchestrator import AttemptOutcome, PipelineJob, PipelineOrchestrator
from hausdog.pipeline.temporal import DocumentPipelineWorkflow

if TYPE_CHECKING:
    from hausdog.config import AppConfig

logger = logging.getLogger(__name__)

BACKOFF_INITIAL_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 10.0

_NON_RETRYABLE = (NotFoundError, AuthorizationError)


class DispatchError(Exception):
    """Raised when a scheduler cannot accept a job."""

    def __init__(self, message: str, *, document_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.document_id = document_id


def backoff_seconds(attempt: int) -> float:
    """Delay before attempt `attempt + 1`: 1s doubling, capped at 10s."""
    return min(BACKOFF_MAX_SECONDS, BACKOFF_INITIAL_SECONDS * 2 ** (attempt - 1))


class Scheduler(ABC):
    """Accepts pipeline jobs from ingress."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Scheduler name for logs."""
        ...

    @abstractmethod
    async def dispatch(self, job: PipelineJob) -> None:
        """Hand a job over for execution.

        Raises:
            DispatchError: If the job could not be accepted.
        """
        ...


class InlineScheduler(Scheduler):
    """Runs up to max_attempts attempts in a worker thread.

    Failures are logged, never raised to the ingress caller: the document's
    status and retry_count already record the outcome.

    Args:
        orchestrator: Pipeline orchestrator.
        sleep: Awaitable sleep, replaced in tests.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "inline"

    async def dispatch(self, job: PipelineJob) -> None:
        max_attempts = self._orchestrator.max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                outcome = await asyncio.to_thread(
                    self._orchestrator.run_attempt, job, attempt=attempt
                )
            except _NON_RETRYABLE as e:
                logger.error("Inline pipeline abandoned for %s: %s", job.document_id, e)
                return
            except HausdogError as e:
                if attempt == max_attempts:
                    logger.error(
                        "Inline pipeline exhausted %d attempts for %s: %s",
                        max_attempts,
                        job.document_id,
                        e,
                    )
                    return
                delay = backoff_seconds(attempt)
                logger.warning(
                    "Inline attempt %d for %s failed, retrying in %.0fs",
                    attempt,
                    job.document_id,
                    delay,
                )
                await self._sleep(delay)
                continue

            if outcome == AttemptOutcome.SKIPPED and attempt == 1:
                logger.info("Inline dispatch for %s found nothing to do", job.document_id)
            return


class TemporalScheduler(Scheduler):
    """Starts DocumentPipelineWorkflow for each job.

    The client is connected lazily on first dispatch and reused.

    Args:
        host: Temporal frontend address.
        namespace: Temporal namespace.
        task_queue: Task queue the worker polls.
        client: Preconnected client (tests).
    """

    def __init__(
        self,
        host: str,
        namespace: str,
        task_queue: str,
        *,
        client: Client | None = None,
    ) -> None:
        self._host = host
        self._namespace = namespace
        self._task_queue = task_queue
        self._client = client
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "temporal"

    async def _get_client(self) -> Client:
        async with self._lock:
            if self._client is None:
                self._client = await Client.connect(self._host, namespace=self._namespace)
                logger.info("Connected to Temporal at %s", self._host)
            return self._client

    async def dispatch(self, job: PipelineJob) -> None:
        try:
            client = await self._get_client()
            await client.start_workflow(
                DocumentPipelineWorkflow.run,
                job.to_payload(),
                id=job.workflow_id,
                task_queue=self._task_queue,
            )
        except WorkflowAlreadyStartedError:
            logger.info("Workflow %s already running", job.workflow_id)
            return
        except Exception as e:
            raise DispatchError(
                f"Could not start workflow: {type(e).__name__}: {e}",
                document_id=job.document_id,
            ) from e
        logger.info("Started workflow %s on %s", job.workflow_id, self._task_queue)


class FallbackScheduler(Scheduler):
    """Dispatch through `primary`; on DispatchError run the job with `fallback`.

    The fallback is used only for jobs the primary refused, so a document is
    never executed by both paths.
    """

    def __init__(self, primary: Scheduler, fallback: Scheduler) -> None:
        self._primary = primary
        self._fallback = fallback

    @property
    def name(self) -> str:
        return f"{self._primary.name}+{self._fallback.name}"

    async def dispatch(self, job: PipelineJob) -> None:
        try:
            await self._primary.dispatch(job)
        except DispatchError as e:
            logger.warning(
                "%s dispatch failed for %s (%s); running with %s",
                self._primary.name,
                job.document_id,
                e.message,
                self._fallback.name,
            )
            await self._fallback.dispatch(job)


def build_scheduler(config: AppConfig, orchestrator: PipelineOrchestrator) -> Scheduler:
    """Select the scheduler named by HAUSDOG_SCHEDULER."""
    inline = InlineScheduler(orchestrator)
    if config.scheduler == "temporal":
        temporal = TemporalScheduler(
            config.temporal_host,
            config.temporal_namespace,
            config.task_queue,
        )
        return FallbackScheduler(temporal, inline)
    return inline
