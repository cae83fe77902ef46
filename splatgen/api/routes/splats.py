"""Routes for splat generation, regeneration and status polling."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, status
from fastapi.responses import JSONResponse

from splatgen.api.dependencies import (
    get_app_settings,
    get_auth_dependency,
    get_generation_queue,
    get_source_images,
    get_splat_client,
    get_state_tracker,
    get_status_query,
)
from splatgen.core.config import Settings
from splatgen.core.logging import get_logger
from splatgen.models.job import EnqueueOutcome, GenerationOptions, GenerationStatus, QueueStats, SplatFormat
from splatgen.models.splat import EnqueueResponse, ServiceHealthResponse, StatusResponse
from splatgen.services.generation_queue import GenerationQueue
from splatgen.services.source_images import SourceImageStore
from splatgen.services.splat_client import SplatServiceClient
from splatgen.services.state_tracker import JobStateTracker
from splatgen.services.status import StatusQuery

logger = get_logger(__name__)

router = APIRouter(prefix="/splats", tags=["splats"], dependencies=[Depends(get_auth_dependency)])

_ENQUEUE_STATUS = {
    EnqueueOutcome.enqueued: GenerationStatus.queued.value,
    EnqueueOutcome.already_queued: "already_queued",
    EnqueueOutcome.previously_failed: GenerationStatus.failed.value,
}


def _resolve_options(options: Optional[GenerationOptions], app_settings: Settings) -> GenerationOptions:
    if options is None:
        return GenerationOptions(format=app_settings.default_format)
    if "format" not in options.model_fields_set:
        return options.model_copy(update={"format": SplatFormat(app_settings.default_format)})
    return options


@router.get("/queue/stats", response_model=QueueStats, summary="Inspect the generation queue")
def queue_stats(queue: GenerationQueue = Depends(get_generation_queue)) -> QueueStats:
    return queue.stats()


@router.get(
    "/service/health",
    response_model=ServiceHealthResponse,
    summary="Check the generation service",
)
def service_health(
    client: SplatServiceClient = Depends(get_splat_client),
) -> ServiceHealthResponse:
    """Operator connection test against the generation service."""

    return ServiceHealthResponse(healthy=client.health_check(), service_url=client.base_url)


@router.post("/maintenance/reap", summary="Release stale in-progress claims")
def reap_stale_claims(
    tracker: JobStateTracker = Depends(get_state_tracker),
    app_settings: Settings = Depends(get_app_settings),
) -> dict:
    reaped = tracker.reap_stale(app_settings.task_time_limit)
    return {"reaped": reaped}


@router.post(
    "/{image_id}/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueResponse,
    summary="Enqueue a splat generation job",
)
def enqueue_generation(
    image_id: str,
    options: Optional[GenerationOptions] = Body(default=None),
    queue: GenerationQueue = Depends(get_generation_queue),
    sources: SourceImageStore = Depends(get_source_images),
    app_settings: Settings = Depends(get_app_settings),
) -> EnqueueResponse:
    """Queue generation for an image unless a job is already waiting."""

    sources.resolve(image_id)
    outcome = queue.enqueue(image_id, _resolve_options(options, app_settings))
    return EnqueueResponse(image_id=image_id, status=_ENQUEUE_STATUS[outcome])


@router.post(
    "/{image_id}/regenerate",
    response_model=EnqueueResponse,
    summary="Delete the existing splat and generate it again",
)
def regenerate(
    image_id: str,
    options: Optional[GenerationOptions] = Body(default=None),
    queue: GenerationQueue = Depends(get_generation_queue),
    sources: SourceImageStore = Depends(get_source_images),
    app_settings: Settings = Depends(get_app_settings),
) -> EnqueueResponse:
    sources.resolve(image_id)
    queue.regenerate(image_id, _resolve_options(options, app_settings))
    logger.info("splat_regeneration_requested", image_id=image_id)
    return EnqueueResponse(image_id=image_id, status=GenerationStatus.queued.value)


@router.get(
    "/{image_id}/status",
    response_model=StatusResponse,
    summary="Poll generation status for an image",
    responses={404: {"description": "Image not found"}},
)
def check_generation(
    image_id: str,
    accept_language: Optional[str] = Header(default=None),
    status_query: StatusQuery = Depends(get_status_query),
    sources: SourceImageStore = Depends(get_source_images),
):
    """Return complete, processing, failed or pending for the image."""

    if not sources.exists(image_id):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"status": "error", "message": "File not found"},
        )

    return status_query.check(image_id, accept_language=accept_language)
