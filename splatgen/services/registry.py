"""Process-wide service instances built from settings.

Each factory is cached so the API and the Celery worker share one instance per
process. Tests replace them through FastAPI dependency overrides or by
patching the factory.
"""

from __future__ import annotations

from functools import lru_cache

from splatgen.core.config import settings
from splatgen.services.artifact_store import ArtifactStore
from splatgen.services.generation_queue import GenerationQueue
from splatgen.services.generation_worker import GenerationWorker
from splatgen.services.source_images import SourceImageStore
from splatgen.services.splat_client import SplatServiceClient
from splatgen.services.state_tracker import (
    InMemoryJobStateTracker,
    JobStateTracker,
    RedisJobStateTracker,
)
from splatgen.services.status import StatusQuery
from splatgen.services.viewer import build_renderer


@lru_cache
def get_state_tracker() -> JobStateTracker:
    if settings.state_backend == "memory":
        return InMemoryJobStateTracker()
    return RedisJobStateTracker.from_url(settings.redis_url, prefix=settings.state_key_prefix)


@lru_cache
def get_artifact_store() -> ArtifactStore:
    return ArtifactStore(
        root=settings.storage_root,
        public_base_url=settings.public_base_url,
        default_format=settings.default_format,
    )


@lru_cache
def get_source_images() -> SourceImageStore:
    return SourceImageStore(settings.storage_root)


@lru_cache
def get_splat_client() -> SplatServiceClient:
    return SplatServiceClient(
        base_url=settings.splat_service_url,
        generation_timeout=settings.generation_timeout,
        download_timeout=settings.download_timeout,
        health_timeout=settings.health_timeout,
    )


@lru_cache
def get_generation_queue() -> GenerationQueue:
    from splatgen.tasks.generation_tasks import CeleryDispatcher

    return GenerationQueue(
        tracker=get_state_tracker(),
        dispatcher=CeleryDispatcher(),
        artifact_store=get_artifact_store(),
        persist_failures=settings.persist_failures,
    )


@lru_cache
def get_generation_worker() -> GenerationWorker:
    return GenerationWorker(
        tracker=get_state_tracker(),
        sources=get_source_images(),
        client=get_splat_client(),
        artifact_store=get_artifact_store(),
        scratch_dir=settings.scratch_dir,
        persist_failures=settings.persist_failures,
    )


@lru_cache
def get_status_query() -> StatusQuery:
    return StatusQuery(
        artifact_store=get_artifact_store(),
        tracker=get_state_tracker(),
        renderer=build_renderer(settings),
        persist_failures=settings.persist_failures,
    )
