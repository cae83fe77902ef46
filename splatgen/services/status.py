"""Status query consumed by the client-side poller."""

from __future__ import annotations

from typing import Optional

from splatgen.core.logging import get_logger
from splatgen.models.job import GenerationStatus
from splatgen.models.splat import StatusResponse
from splatgen.services.artifact_store import ArtifactStore
from splatgen.services.state_tracker import JobStateTracker
from splatgen.services.viewer import ViewerRenderer

logger = get_logger(__name__)

FAILURE_MESSAGES = {
    "en": "Generation failed. Please try again.",
    "de": "Generierung fehlgeschlagen. Bitte versuchen Sie es erneut.",
    "fr": "La génération a échoué. Veuillez réessayer.",
    "es": "La generación ha fallado. Inténtelo de nuevo.",
}
DEFAULT_LANGUAGE = "en"


def failure_message(accept_language: Optional[str] = None) -> str:
    """Pick the best failure message for an ``Accept-Language`` header value."""

    if accept_language:
        for part in accept_language.split(","):
            tag = part.split(";")[0].strip().lower()
            language = tag.split("-")[0]
            if language in FAILURE_MESSAGES:
                return FAILURE_MESSAGES[language]
    return FAILURE_MESSAGES[DEFAULT_LANGUAGE]


class StatusQuery:
    """Answers ``complete`` / ``processing`` / ``failed`` / ``pending`` for an image."""

    def __init__(
        self,
        artifact_store: ArtifactStore,
        tracker: JobStateTracker,
        renderer: ViewerRenderer,
        persist_failures: bool = False,
    ) -> None:
        self.artifact_store = artifact_store
        self.tracker = tracker
        self.renderer = renderer
        self.persist_failures = persist_failures

    def check(self, image_id: str, accept_language: Optional[str] = None) -> StatusResponse:
        artifact = self.artifact_store.lookup(image_id)
        if artifact is not None:
            return StatusResponse(
                image_id=image_id,
                status=GenerationStatus.complete,
                splat_url=artifact.url,
                viewer_html=self.renderer.render(artifact),
            )

        if self.tracker.is_in_progress(image_id):
            return StatusResponse(image_id=image_id, status=GenerationStatus.processing)

        if (
            self.persist_failures
            and not self.tracker.is_queued(image_id)
            and self.tracker.failure_for(image_id) is not None
        ):
            logger.debug("status_failed_reported", image_id=image_id)
            return StatusResponse(
                image_id=image_id,
                status=GenerationStatus.failed,
                message=failure_message(accept_language),
            )

        return StatusResponse(image_id=image_id, status=GenerationStatus.pending)
