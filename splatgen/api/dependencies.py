"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from splatgen.core.config import Settings, get_settings, settings
from splatgen.services import registry
from splatgen.services.artifact_store import ArtifactStore
from splatgen.services.generation_queue import GenerationQueue
from splatgen.services.source_images import SourceImageStore
from splatgen.services.splat_client import SplatServiceClient
from splatgen.services.state_tracker import JobStateTracker
from splatgen.services.status import StatusQuery

api_token_header = APIKeyHeader(name=settings.auth_token_header, auto_error=False)


def verify_api_key(token: str | None = Security(api_token_header)) -> str:
    """Validate static API token if configured."""

    expected = settings.auth_jwt_secret
    if not expected:
        return ""

    if token in {expected, f"Bearer {expected}"}:
        return token or ""

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


def get_auth_dependency(token: str = Depends(verify_api_key)) -> str:
    """Expose dependency alias for routers."""

    return token


def get_app_settings() -> Settings:
    return get_settings()


def get_state_tracker() -> JobStateTracker:
    return registry.get_state_tracker()


def get_artifact_store() -> ArtifactStore:
    return registry.get_artifact_store()


def get_source_images() -> SourceImageStore:
    return registry.get_source_images()


def get_splat_client() -> SplatServiceClient:
    return registry.get_splat_client()


def get_generation_queue() -> GenerationQueue:
    return registry.get_generation_queue()


def get_status_query() -> StatusQuery:
    return registry.get_status_query()
