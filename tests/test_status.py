from pathlib import Path

import pytest

from splatgen.core.config import Settings
from splatgen.models.job import GenerationStatus
from splatgen.services.status import StatusQuery, failure_message
from splatgen.services.viewer import LinkRenderer, PlayCanvasViewerRenderer, build_renderer


def _store_artifact(artifact_store, tmp_path: Path, image_id: str = "42"):
    source = tmp_path / f"{image_id}.bin"
    source.write_bytes(b"splat")
    return artifact_store.save(image_id, source, "sog")


@pytest.mark.parametrize(
    "has_artifact, in_progress, queued, expected",
    [
        (True, False, False, GenerationStatus.complete),
        (True, True, False, GenerationStatus.complete),
        (True, False, True, GenerationStatus.complete),
        (False, True, False, GenerationStatus.processing),
        (False, True, True, GenerationStatus.processing),
        (False, False, True, GenerationStatus.pending),
        (False, False, False, GenerationStatus.pending),
    ],
)
def test_status_follows_artifact_then_in_progress(
    status_query, artifact_store, tracker, tmp_path, has_artifact, in_progress, queued, expected
):
    if has_artifact:
        _store_artifact(artifact_store, tmp_path)
    if in_progress:
        tracker.mark_in_progress("42")
    if queued:
        tracker.mark_queued("42")

    assert status_query.check("42").status is expected


def test_complete_status_carries_url_and_fragment(status_query, artifact_store, tmp_path):
    _store_artifact(artifact_store, tmp_path)

    response = status_query.check("42")

    assert response.splat_url == "http://testserver/files/splats/42.sog"
    assert 'href="http://testserver/files/splats/42.sog"' in response.viewer_html


def test_failure_without_persistence_reads_as_pending(status_query, tracker):
    tracker.record_failure("42", "boom")

    assert status_query.check("42").status is GenerationStatus.pending


def test_persisted_failure_reports_localized_message(artifact_store, tracker):
    query = StatusQuery(artifact_store, tracker, LinkRenderer(), persist_failures=True)
    tracker.record_failure("42", "boom")

    response = query.check("42", accept_language="de-DE,de;q=0.9,en;q=0.8")

    assert response.status is GenerationStatus.failed
    assert response.message == "Generierung fehlgeschlagen. Bitte versuchen Sie es erneut."


def test_in_progress_wins_over_recorded_failure(artifact_store, tracker):
    query = StatusQuery(artifact_store, tracker, LinkRenderer(), persist_failures=True)
    tracker.record_failure("42", "boom")
    tracker.mark_in_progress("42")

    assert query.check("42").status is GenerationStatus.processing


def test_queued_retry_wins_over_recorded_failure(artifact_store, tracker):
    query = StatusQuery(artifact_store, tracker, LinkRenderer(), persist_failures=True)
    tracker.record_failure("42", "HTTP 503")
    tracker.mark_queued("42")

    assert query.check("42").status is GenerationStatus.pending

    tracker.unmark_queued("42")
    assert query.check("42").status is GenerationStatus.failed


@pytest.mark.parametrize(
    "header, expected_prefix",
    [
        (None, "Generation failed"),
        ("fr-CH, fr;q=0.9", "La génération"),
        ("ja, es;q=0.5", "La generación"),
        ("ja", "Generation failed"),
    ],
)
def test_failure_message_negotiation(header, expected_prefix):
    assert failure_message(header).startswith(expected_prefix)


def test_playcanvas_renderer_includes_viewer_settings(artifact_store, tmp_path):
    artifact = _store_artifact(artifact_store, tmp_path)
    renderer = PlayCanvasViewerRenderer(width="800px", height="400px", enable_vr=False, enable_ar=True)

    html = renderer.render(artifact)

    assert 'id="viewer_42"' in html
    assert 'data-splat-url="http://testserver/files/splats/42.sog"' in html
    assert 'data-enable-vr="false"' in html
    assert 'data-enable-ar="true"' in html
    assert "width: 800px; height: 400px;" in html


def test_build_renderer_follows_settings():
    assert isinstance(build_renderer(Settings(viewer_renderer="link")), LinkRenderer)
    assert isinstance(build_renderer(Settings(viewer_renderer="playcanvas")), PlayCanvasViewerRenderer)
