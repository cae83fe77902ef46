"""Celery tasks for splat generation."""

from __future__ import annotations

from celery import Task
from celery.signals import worker_ready
from kombu.exceptions import ChannelError, OperationalError

from splatgen.core.config import settings
from splatgen.core.errors import (
    RETRYABLE_KINDS,
    DownloadError,
    ErrorKind,
    GenerationError,
    GenerationInProgressError,
    NotFoundError,
    SplatError,
    StorageError,
)
from splatgen.core.logging import bind_job_context, get_logger
from splatgen.models.job import GenerationJob, JobOutcome, JobResult
from splatgen.services.registry import get_generation_worker, get_state_tracker
from splatgen.worker.celery_app import celery_app

logger = get_logger(__name__)

_ERRORS_BY_KIND = {
    ErrorKind.not_found: NotFoundError,
    ErrorKind.generation: GenerationError,
    ErrorKind.download: DownloadError,
    ErrorKind.storage: StorageError,
}


def error_for(result: JobResult) -> SplatError:
    """Rebuild the exception Celery records for a failed or deferred result."""

    if result.outcome is JobOutcome.deferred:
        return GenerationInProgressError(
            f"Generation for image {result.image_id} is already in progress",
            image_id=result.image_id,
        )
    error_cls = _ERRORS_BY_KIND.get(result.error_kind, GenerationError)
    return error_cls(result.error or "Splat generation failed", image_id=result.image_id)


def retry_countdown(outcome: JobOutcome, retries: int) -> int:
    if outcome is JobOutcome.deferred:
        return settings.defer_countdown
    return settings.retry_backoff_base * (2**retries)


@celery_app.task(name="splats.generate", bind=True, max_retries=settings.max_retries)
def generate_splat(self: Task, job_payload: dict) -> dict:
    """Run one delivery of a generation job and decide retry or discard."""

    job = GenerationJob.model_validate(job_payload)
    bind_job_context(image_id=job.image_id, task_id=self.request.id, attempt=self.request.retries)
    logger.info("splat_generation_task_started")

    worker = get_generation_worker()
    result = worker.process(job)

    if result.outcome is JobOutcome.succeeded:
        logger.info("splat_generation_task_completed")
        return result.model_dump(mode="json")

    if result.outcome is JobOutcome.failed and result.error_kind not in RETRYABLE_KINDS:
        logger.error("splat_generation_task_discarded", error_kind=result.error_kind, error=result.error)
        return result.model_dump(mode="json")

    exc = error_for(result)
    if self.request.retries >= self.max_retries:
        logger.error("splat_generation_task_retries_exhausted", outcome=result.outcome, error=exc.message)
        if result.outcome is JobOutcome.failed:
            worker.record_failure(result)
        raise exc

    # Redelivery is a queued job again until a worker picks it up.
    get_state_tracker().mark_queued(job.image_id)
    countdown = retry_countdown(result.outcome, self.request.retries)
    logger.warning("splat_generation_task_retrying", outcome=result.outcome, countdown=countdown, error=exc.message)
    raise self.retry(exc=exc, countdown=countdown)


class CeleryDispatcher:
    """Hands jobs to ``generate_splat`` on the configured queue."""

    def __init__(self, queue: str | None = None) -> None:
        self.queue = queue or settings.celery_queue

    def dispatch(self, job: GenerationJob) -> None:
        generate_splat.apply_async(args=[job.model_dump(mode="json")], queue=self.queue)

    def pending_count(self) -> int:
        """Messages waiting in the broker queue."""

        try:
            with celery_app.connection_for_read() as connection:
                declared = connection.default_channel.queue_declare(queue=self.queue, passive=True)
                return int(declared.message_count)
        except (ChannelError, OperationalError, OSError) as exc:
            logger.warning("queue_depth_unavailable", queue=self.queue, error=str(exc))
            return 0


@worker_ready.connect
def reap_stale_claims(**_: object) -> None:
    """Release in-progress claims left behind by hard-killed executions."""

    reaped = get_state_tracker().reap_stale(settings.task_time_limit)
    if reaped:
        logger.warning("worker_start_reaped_claims", image_ids=reaped)
