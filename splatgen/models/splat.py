"""Pydantic models for source images, artifacts and the status surface."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .job import GenerationStatus, SplatFormat


class SourceImage(BaseModel):
    """Image registered in the content store."""

    image_id: str
    path: Path
    filename: str
    owner_id: Optional[str] = None
    size_bytes: int = 0


class Artifact(BaseModel):
    """Generated splat file for one image and format."""

    image_id: str
    format: SplatFormat
    uri: str = Field(..., description="Storage key, e.g. splats/42.sog")
    path: Path
    url: str
    size_bytes: int
    created_at: datetime
    owner_id: Optional[str] = None


class StatusResponse(BaseModel):
    """API response for status polling."""

    image_id: str
    status: GenerationStatus
    splat_url: Optional[str] = None
    viewer_html: Optional[str] = None
    message: Optional[str] = None


class EnqueueResponse(BaseModel):
    image_id: str
    status: str


class SourceImageResponse(BaseModel):
    image_id: str
    filename: str
    size_bytes: int
    owner_id: Optional[str] = None
    generation_status: Optional[str] = None


class ServiceHealthResponse(BaseModel):
    healthy: bool
    service_url: str
