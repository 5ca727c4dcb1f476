"""Temporal workflow, activity and worker for the document pipeline.

The workflow runs a single activity, `run_pipeline_attempt`, under a retry
policy of at most three attempts with 1s to 10s exponential backoff. The
activity is synchronous and executes in the worker's thread pool.

An attempt that times out leaves its document in processing. The next
attempt regresses it first (reclaim_abandoned) so the retry bookkeeping is
the same as for an attempt that failed normally.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from temporalio import activity, workflow
from temporalio.client import Client
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError
from temporalio.worker import Worker

with workflow.unsafe.imports_passed_through():
    from hausdog.errors import AuthorizationError, NotFoundError
    from hausdog.pipeline.orchestrator import PipelineJob, PipelineOrchestrator

if TYPE_CHECKING:
    from hausdog.config import AppConfig

logger = logging.getLogger(__name__)

RUN_ATTEMPT_ACTIVITY = "run_pipeline_attempt"
ATTEMPT_TIMEOUT = timedelta(minutes=5)
MAX_CONCURRENT_ACTIVITIES = 5

PIPELINE_RETRY_POLICY = RetryPolicy(
    maximum_attempts=3,
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=10),
    backoff_coefficient=2.0,
    non_retryable_error_types=["NotFoundError", "AuthorizationError"],
)


@workflow.defn(name="DocumentPipelineWorkflow")
class DocumentPipelineWorkflow:
    """Carries one document through the pipeline with bounded retries."""

    @workflow.run
    async def run(self, payload: dict[str, Any]) -> str:
        return await workflow.execute_activity(
            RUN_ATTEMPT_ACTIVITY,
            payload,
            start_to_close_timeout=ATTEMPT_TIMEOUT,
            retry_policy=PIPELINE_RETRY_POLICY,
        )


class PipelineActivities:
    """Activity implementations bound to a process-wide orchestrator."""

    def __init__(self, orchestrator: PipelineOrchestrator) -> None:
        self._orchestrator = orchestrator

    @activity.defn(name=RUN_ATTEMPT_ACTIVITY)
    def run_pipeline_attempt(self, payload: dict[str, Any]) -> str:
        """Run one orchestrator attempt for the job in `payload`.

        Returns:
            The AttemptOutcome value.

        Raises:
            ApplicationError: Non-retryable for missing or foreign documents.
            HausdogError: Any other stage failure; Temporal retries it.
        """
        job = PipelineJob.from_payload(payload)
        attempt = activity.info().attempt
        if attempt > 1:
            self._orchestrator.reclaim_abandoned(job)

        try:
            outcome = self._orchestrator.run_attempt(job, attempt=attempt)
        except (NotFoundError, AuthorizationError) as e:
            raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e
        return outcome.value


async def run_worker(config: AppConfig, orchestrator: PipelineOrchestrator) -> None:
    """Connect to Temporal and poll the pipeline task queue until cancelled."""
    logger.info("Connecting to Temporal at %s", config.temporal_host)
    client = await Client.connect(config.temporal_host, namespace=config.temporal_namespace)

    activities = PipelineActivities(orchestrator)
    with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_ACTIVITIES) as executor:
        worker = Worker(
            client,
            task_queue=config.task_queue,
            workflows=[DocumentPipelineWorkflow],
            activities=[activities.run_pipeline_attempt],
            activity_executor=executor,
            max_concurrent_activities=MAX_CONCURRENT_ACTIVITIES,
        )
        logger.info(
            "Worker polling task_queue=%s namespace=%s",
            config.task_queue,
            config.temporal_namespace,
        )
        await worker.run()
