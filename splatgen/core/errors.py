"""Error taxonomy shared by the worker, the queue and the API layer."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed generation attempt."""

    not_found = "not_found"
    generation = "generation"
    download = "download"
    storage = "storage"


class SplatError(Exception):
    """Base class for splat generation failures."""

    kind: ErrorKind | None = None

    def __init__(self, message: str, image_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.image_id = image_id


class NotFoundError(SplatError):
    """Source image missing, unreadable, or referenced by a stale id."""

    kind = ErrorKind.not_found


class GenerationError(SplatError):
    """The generation service rejected the request or could not be reached."""

    kind = ErrorKind.generation


class DownloadError(SplatError):
    """Transfer of the generated artifact failed or produced no bytes."""

    kind = ErrorKind.download


class StorageError(SplatError):
    """Local persistence of an artifact failed."""

    kind = ErrorKind.storage


class GenerationInProgressError(SplatError):
    """Raised when a regenerate is requested while a worker holds the image."""


class UnsupportedFormatError(SplatError):
    """Requested artifact format differs from the configured one."""


RETRYABLE_KINDS = frozenset({ErrorKind.generation, ErrorKind.download, ErrorKind.storage})
