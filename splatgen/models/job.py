"""Shared job models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from splatgen.core.errors import ErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SplatFormat(str, Enum):
    """Artifact encodings produced by the generation service."""

    sog = "sog"  # compressed
    ply = "ply"  # uncompressed


class GenerationStatus(str, Enum):
    """Statuses reported to pollers."""

    complete = "complete"
    processing = "processing"
    pending = "pending"
    failed = "failed"
    queued = "queued"


class EnqueueOutcome(str, Enum):
    """Result of an enqueue request."""

    enqueued = "enqueued"
    already_queued = "already_queued"
    previously_failed = "previously_failed"


class GenerationOptions(BaseModel):
    """Options attached to a job at enqueue time."""

    model_config = ConfigDict(frozen=True)

    format: SplatFormat = SplatFormat.sog
    overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra form fields forwarded verbatim to the generation service.",
    )


class GenerationJob(BaseModel):
    """One unit of enqueued generation work."""

    model_config = ConfigDict(frozen=True)

    image_id: str
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    queued_at: datetime = Field(default_factory=utcnow)


class JobOutcome(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    deferred = "deferred"


class JobResult(BaseModel):
    """Explicit outcome of one worker execution, inspected by the host queue."""

    image_id: str
    outcome: JobOutcome
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    artifact: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is JobOutcome.succeeded

    @classmethod
    def success(cls, image_id: str, artifact: Dict[str, Any]) -> "JobResult":
        return cls(image_id=image_id, outcome=JobOutcome.succeeded, artifact=artifact)

    @classmethod
    def failure(cls, image_id: str, kind: ErrorKind, message: str) -> "JobResult":
        return cls(image_id=image_id, outcome=JobOutcome.failed, error_kind=kind, error=message)

    @classmethod
    def deferral(cls, image_id: str) -> "JobResult":
        return cls(image_id=image_id, outcome=JobOutcome.deferred)


class QueueStats(BaseModel):
    """Operator view of the generation queue."""

    pending_count: int
    queued_ids: List[str]
    in_progress_ids: List[str]
