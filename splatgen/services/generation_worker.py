"""Per-job execution of the splat generation pipeline."""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from splatgen.core.errors import RETRYABLE_KINDS, DownloadError, SplatError, StorageError
from splatgen.core.logging import get_logger
from splatgen.models.job import GenerationJob, JobResult
from splatgen.services.artifact_store import ArtifactStore
from splatgen.services.source_images import SourceImageStore
from splatgen.services.splat_client import SplatServiceClient
from splatgen.services.state_tracker import JobStateTracker

logger = get_logger(__name__)


class GenerationWorker:
    """Drives one job through generate, download and save.

    ``process`` never raises for pipeline failures; it returns a ``JobResult``
    and the hosting queue decides whether to retry or discard.
    """

    def __init__(
        self,
        tracker: JobStateTracker,
        sources: SourceImageStore,
        client: SplatServiceClient,
        artifact_store: ArtifactStore,
        scratch_dir: Optional[Path] = None,
        persist_failures: bool = False,
    ) -> None:
        self.tracker = tracker
        self.sources = sources
        self.client = client
        self.artifact_store = artifact_store
        self.scratch_dir = scratch_dir
        self.persist_failures = persist_failures

    def process(self, job: GenerationJob) -> JobResult:
        image_id = job.image_id
        self.tracker.unmark_queued(image_id)

        with self.tracker.in_progress(image_id) as claimed:
            if not claimed:
                logger.warning("generation_already_in_progress", image_id=image_id)
                return JobResult.deferral(image_id)

            try:
                artifact = self._run(job)
            except SplatError as exc:
                logger.error(
                    "generation_failed",
                    image_id=image_id,
                    error_kind=exc.kind.value if exc.kind else None,
                    error=exc.message,
                )
                result = JobResult.failure(image_id, exc.kind, exc.message)
                # Retryable failures are recorded by the host once retries run out.
                if exc.kind not in RETRYABLE_KINDS:
                    self.record_failure(result)
                return result

        self.tracker.clear_failure(image_id)
        logger.info("generation_succeeded", image_id=image_id, uri=artifact["uri"])
        return JobResult.success(image_id, artifact)

    def record_failure(self, result: JobResult) -> None:
        """Persist a terminal failure so status reports ``failed``."""

        if self.persist_failures:
            self.tracker.record_failure(result.image_id, result.error or "Splat generation failed")

    def _run(self, job: GenerationJob) -> dict:
        image_id = job.image_id
        source = self.sources.resolve(image_id)

        logger.info("generation_started", image_id=image_id, format=job.options.format.value)
        splat_url = self.client.generate(source.path, job.options)

        with self._scratch_file() as scratch:
            if not self.client.download(splat_url, scratch):
                raise DownloadError("Failed to download generated splat", image_id=image_id)

            artifact = self.artifact_store.save(
                image_id,
                scratch,
                job.options.format,
                owner_id=source.owner_id,
            )
            if artifact is None:
                raise StorageError("Failed to save splat file", image_id=image_id)

        return artifact.model_dump(mode="json")

    @contextmanager
    def _scratch_file(self) -> Iterator[Path]:
        try:
            if self.scratch_dir is not None:
                Path(self.scratch_dir).mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(prefix="splat_", dir=self.scratch_dir)
            os.close(fd)
        except OSError as exc:
            raise StorageError(f"Unable to allocate scratch file: {exc}") from exc
        path = Path(name)
        try:
            yield path
        finally:
            path.unlink(missing_ok=True)
