"""Routes for registering source images."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from splatgen.api.dependencies import (
    get_app_settings,
    get_auth_dependency,
    get_generation_queue,
    get_source_images,
)
from splatgen.core.config import Settings
from splatgen.core.logging import get_logger
from splatgen.models.job import EnqueueOutcome, GenerationOptions, GenerationStatus, SplatFormat
from splatgen.models.splat import SourceImageResponse
from splatgen.services.generation_queue import GenerationQueue
from splatgen.services.source_images import SourceImageStore

logger = get_logger(__name__)

router = APIRouter(prefix="/images", tags=["images"], dependencies=[Depends(get_auth_dependency)])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SourceImageResponse,
    summary="Upload a source image",
)
def upload_image(
    file: UploadFile = File(...),
    owner_id: Optional[str] = Form(default=None),
    sources: SourceImageStore = Depends(get_source_images),
    queue: GenerationQueue = Depends(get_generation_queue),
    app_settings: Settings = Depends(get_app_settings),
) -> SourceImageResponse:
    """Store an image so splats can be generated from it.

    With ``auto_generate`` enabled the upload also queues its first generation.
    """

    content = file.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")

    if app_settings.max_file_size and len(content) > app_settings.max_file_size:
        logger.info("image_upload_too_large", size_bytes=len(content), limit=app_settings.max_file_size)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image exceeds maximum size of {app_settings.max_file_size} bytes",
        )

    image = sources.register(content, file.filename or "image.jpg", owner_id=owner_id)

    generation_status = None
    if app_settings.auto_generate:
        outcome = queue.enqueue(image.image_id, GenerationOptions(format=SplatFormat(app_settings.default_format)))
        if outcome is EnqueueOutcome.enqueued:
            generation_status = GenerationStatus.queued.value
        else:
            generation_status = outcome.value
        logger.info("image_upload_auto_generate", image_id=image.image_id, outcome=outcome.value)

    return SourceImageResponse(
        image_id=image.image_id,
        filename=image.filename,
        size_bytes=image.size_bytes,
        owner_id=image.owner_id,
        generation_status=generation_status,
    )
