"""Deduplicating front door for splat generation jobs."""

from __future__ import annotations

from typing import Optional, Protocol

from splatgen.core.errors import GenerationInProgressError, UnsupportedFormatError
from splatgen.core.logging import get_logger
from splatgen.models.job import EnqueueOutcome, GenerationJob, GenerationOptions, QueueStats
from splatgen.services.artifact_store import ArtifactStore, validate_image_id
from splatgen.services.state_tracker import JobStateTracker

logger = get_logger(__name__)


class JobDispatcher(Protocol):
    """Delivery mechanism that hands each job to one worker execution."""

    def dispatch(self, job: GenerationJob) -> None: ...

    def pending_count(self) -> int: ...


class GenerationQueue:
    """Accepts enqueue requests and rejects duplicates already queued."""

    def __init__(
        self,
        tracker: JobStateTracker,
        dispatcher: JobDispatcher,
        artifact_store: ArtifactStore,
        persist_failures: bool = False,
    ) -> None:
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.artifact_store = artifact_store
        self.persist_failures = persist_failures

    def enqueue(self, image_id: str, options: Optional[GenerationOptions] = None) -> EnqueueOutcome:
        """Queue a generation job unless one is already waiting for ``image_id``.

        In-progress images are not checked here; the worker's claim defers a
        second delivery while the first is still running.
        """

        image_id = validate_image_id(image_id)
        options = options or GenerationOptions(format=self.artifact_store.default_format)
        self._check_format(image_id, options)

        if self.tracker.is_queued(image_id):
            logger.info("generation_already_queued", image_id=image_id)
            return EnqueueOutcome.already_queued

        if self.persist_failures and self.tracker.failure_for(image_id) is not None:
            logger.info("generation_previously_failed", image_id=image_id)
            return EnqueueOutcome.previously_failed

        job = GenerationJob(image_id=image_id, options=options)

        # Must precede dispatch: the worker unmarks queued on delivery.
        self.tracker.mark_queued(image_id)
        try:
            self.dispatcher.dispatch(job)
        except Exception:
            self.tracker.unmark_queued(image_id)
            logger.exception("generation_dispatch_failed", image_id=image_id)
            raise

        logger.info("generation_queued", image_id=image_id, format=options.format.value)
        return EnqueueOutcome.enqueued

    def regenerate(self, image_id: str, options: Optional[GenerationOptions] = None) -> EnqueueOutcome:
        """Drop any existing artifact and queue a fresh generation."""

        image_id = validate_image_id(image_id)
        if options is not None:
            self._check_format(image_id, options)
        if self.tracker.is_in_progress(image_id):
            raise GenerationInProgressError(
                f"Generation for image {image_id} is already in progress",
                image_id=image_id,
            )

        self.tracker.clear_failure(image_id)
        self.artifact_store.delete(image_id)
        return self.enqueue(image_id, options)

    def _check_format(self, image_id: str, options: GenerationOptions) -> None:
        # Status lookups only resolve the configured format.
        if options.format is not self.artifact_store.default_format:
            raise UnsupportedFormatError(
                f"Format {options.format.value!r} is not served; configured format is "
                f"{self.artifact_store.default_format.value!r}",
                image_id=image_id,
            )

    def stats(self) -> QueueStats:
        return QueueStats(
            pending_count=self.dispatcher.pending_count(),
            queued_ids=self.tracker.queued_ids(),
            in_progress_ids=self.tracker.in_progress_ids(),
        )
