from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry
from kombu.exceptions import OperationalError

from splatgen.core.config import settings
from splatgen.core.errors import (
    DownloadError,
    ErrorKind,
    GenerationError,
    GenerationInProgressError,
    NotFoundError,
    StorageError,
)
from splatgen.models.job import GenerationJob, GenerationOptions, GenerationStatus, JobOutcome, JobResult
from splatgen.services.generation_worker import GenerationWorker
from splatgen.services.status import StatusQuery
from splatgen.services.viewer import LinkRenderer
from splatgen.tasks import generation_tasks
from splatgen.tasks.generation_tasks import (
    CeleryDispatcher,
    error_for,
    generate_splat,
    reap_stale_claims,
    retry_countdown,
)


@pytest.fixture
def payload() -> dict:
    return GenerationJob(image_id="42", options=GenerationOptions()).model_dump(mode="json")


@pytest.fixture
def fake_worker(tracker):
    worker = MagicMock()
    with patch.object(generation_tasks, "get_generation_worker", return_value=worker), patch.object(
        generation_tasks, "get_state_tracker", return_value=tracker
    ):
        yield worker


def test_success_returns_result_payload(fake_worker, payload):
    fake_worker.process.return_value = JobResult.success("42", {"uri": "splats/42.sog"})

    result = generate_splat(payload)

    assert result["outcome"] == "succeeded"
    assert result["artifact"] == {"uri": "splats/42.sog"}
    job = fake_worker.process.call_args.args[0]
    assert job.image_id == "42"


def test_missing_source_is_discarded_without_retry(fake_worker, payload, tracker):
    fake_worker.process.return_value = JobResult.failure("42", ErrorKind.not_found, "File 42 not found")

    with patch.object(generate_splat, "retry") as retry:
        result = generate_splat(payload)

    retry.assert_not_called()
    assert result["outcome"] == "failed"
    assert result["error_kind"] == "not_found"
    assert not tracker.is_queued("42")


def test_generation_failure_requests_retry_with_backoff(fake_worker, payload, tracker):
    fake_worker.process.return_value = JobResult.failure("42", ErrorKind.generation, "HTTP 503")

    with patch.object(generate_splat, "retry", side_effect=Retry("retry")) as retry:
        with pytest.raises(Retry):
            generate_splat(payload)

    kwargs = retry.call_args.kwargs
    assert isinstance(kwargs["exc"], GenerationError)
    assert kwargs["countdown"] == settings.retry_backoff_base
    assert tracker.is_queued("42")


def test_deferred_job_is_retried_after_defer_countdown(fake_worker, payload, tracker):
    fake_worker.process.return_value = JobResult.deferral("42")

    with patch.object(generate_splat, "retry", side_effect=Retry("retry")) as retry:
        with pytest.raises(Retry):
            generate_splat(payload)

    assert isinstance(retry.call_args.kwargs["exc"], GenerationInProgressError)
    assert retry.call_args.kwargs["countdown"] == settings.defer_countdown
    assert tracker.is_queued("42")


def test_exhausted_retries_surface_the_error(fake_worker, payload, tracker):
    fake_worker.process.return_value = JobResult.failure("42", ErrorKind.download, "Failed to download")

    with pytest.raises(DownloadError):
        generate_splat.apply(args=[payload], retries=settings.max_retries, throw=True)

    assert not tracker.is_queued("42")


def test_error_for_maps_kinds():
    assert isinstance(error_for(JobResult.failure("1", ErrorKind.not_found, "x")), NotFoundError)
    assert isinstance(error_for(JobResult.failure("1", ErrorKind.download, "x")), DownloadError)
    assert isinstance(error_for(JobResult.deferral("1")), GenerationInProgressError)


def test_retry_countdown_grows_exponentially():
    base = settings.retry_backoff_base
    assert [retry_countdown(JobOutcome.failed, n) for n in range(3)] == [base, base * 2, base * 4]
    assert retry_countdown(JobOutcome.deferred, 2) == settings.defer_countdown


def test_dispatcher_sends_job_to_configured_queue():
    job = GenerationJob(image_id="42")

    with patch.object(generate_splat, "apply_async") as apply_async:
        CeleryDispatcher(queue="splats-test").dispatch(job)

    apply_async.assert_called_once_with(args=[job.model_dump(mode="json")], queue="splats-test")


def test_dispatcher_pending_count_tolerates_broker_outage():
    with patch.object(
        generation_tasks.celery_app, "connection_for_read", side_effect=OperationalError("down")
    ):
        assert CeleryDispatcher().pending_count() == 0


def test_worker_start_reaps_stale_claims(tracker):
    tracker.mark_in_progress("42")

    with patch.object(generation_tasks, "get_state_tracker", return_value=tracker), patch.object(
        tracker, "reap_stale", wraps=tracker.reap_stale
    ) as reap:
        reap_stale_claims()

    reap.assert_called_once_with(settings.task_time_limit)
    assert tracker.is_in_progress("42")


@pytest.fixture
def persisting_task(tracker, sources, splat_client, artifact_store, scratch_dir):
    worker = GenerationWorker(
        tracker, sources, splat_client, artifact_store, scratch_dir=scratch_dir, persist_failures=True
    )
    with patch.object(generation_tasks, "get_generation_worker", return_value=worker), patch.object(
        generation_tasks, "get_state_tracker", return_value=tracker
    ):
        yield worker


def test_failure_awaiting_retry_reads_as_pending(persisting_task, source_image, service_stub, payload, tracker):
    query = StatusQuery(persisting_task.artifact_store, tracker, LinkRenderer(), persist_failures=True)
    service_stub.generate_status = 503

    with patch.object(generate_splat, "retry", side_effect=Retry("retry")):
        with pytest.raises(Retry):
            generate_splat(payload)

    assert tracker.failure_for("42") is None
    assert query.check("42").status is GenerationStatus.pending

    with pytest.raises(GenerationError):
        generate_splat.apply(args=[payload], retries=settings.max_retries, throw=True)

    assert tracker.failure_for("42") == "Generation service responded with HTTP 503"
    assert query.check("42").status is GenerationStatus.failed


def test_discarded_failure_reads_as_failed(persisting_task, payload, tracker):
    query = StatusQuery(persisting_task.artifact_store, tracker, LinkRenderer(), persist_failures=True)

    result = generate_splat(payload)

    assert result["error_kind"] == "not_found"
    assert query.check("42").status is GenerationStatus.failed


def test_exhausted_retries_record_failure(fake_worker, payload):
    failure = JobResult.failure("42", ErrorKind.storage, "disk full")
    fake_worker.process.return_value = failure

    with pytest.raises(StorageError):
        generate_splat.apply(args=[payload], retries=settings.max_retries, throw=True)

    fake_worker.record_failure.assert_called_once_with(failure)


def test_retry_does_not_record_failure(fake_worker, payload):
    fake_worker.process.return_value = JobResult.failure("42", ErrorKind.storage, "disk full")

    with patch.object(generate_splat, "retry", side_effect=Retry("retry")):
        with pytest.raises(Retry):
            generate_splat(payload)

    fake_worker.record_failure.assert_not_called()
