"""Filesystem storage for generated splat artifacts.

Artifacts live at ``{storage_root}/splats/{image_id}.{format}`` with a JSON
metadata record beside them (``{image_id}.{format}.json``). Writes go through a
temporary file in the destination directory followed by ``os.replace`` so a
reader never observes a half-written artifact.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from splatgen.core.errors import NotFoundError, StorageError
from splatgen.core.logging import get_logger
from splatgen.models.job import SplatFormat
from splatgen.models.splat import Artifact

logger = get_logger(__name__)

SPLAT_DIRECTORY = "splats"
_IMAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_image_id(image_id: str) -> str:
    """Reject ids that cannot be used as a single path segment."""

    image_id = str(image_id)
    if not _IMAGE_ID_PATTERN.match(image_id):
        raise NotFoundError(f"Invalid image id: {image_id!r}", image_id=image_id)
    return image_id


class ArtifactStore:
    """Maps source image ids to splat files under a deterministic naming scheme."""

    def __init__(
        self,
        root: Path,
        public_base_url: str,
        default_format: SplatFormat | str = SplatFormat.sog,
    ) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.default_format = SplatFormat(default_format)

    def uri_for(self, image_id: str, fmt: SplatFormat | str | None = None) -> str:
        """Return the storage key for an image/format pair."""

        image_id = validate_image_id(image_id)
        fmt = SplatFormat(fmt or self.default_format)
        return f"{SPLAT_DIRECTORY}/{image_id}.{fmt.value}"

    def path_for(self, image_id: str, fmt: SplatFormat | str | None = None) -> Path:
        return self.root / self.uri_for(image_id, fmt)

    def lookup(self, image_id: str, fmt: SplatFormat | str | None = None) -> Optional[Artifact]:
        """Return the artifact for ``image_id`` if its bytes exist.

        A missing metadata record is registered on the fly so that files copied
        into storage out of band become visible.
        """

        fmt = SplatFormat(fmt or self.default_format)
        path = self.path_for(image_id, fmt)
        if not path.is_file():
            return None

        try:
            return self._lookup_existing(image_id, fmt, path)
        except FileNotFoundError:
            # Deleted between the existence check and stat.
            return None

    def _lookup_existing(self, image_id: str, fmt: SplatFormat, path: Path) -> Artifact:
        record = self._read_metadata(path)
        if record is None:
            logger.info("artifact_metadata_registered", image_id=image_id, uri=self.uri_for(image_id, fmt))
            created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            artifact = self._build_artifact(image_id, fmt, path, created_at=created_at, owner_id=None)
            try:
                self._write_metadata(path, artifact)
            except OSError as exc:
                logger.warning("artifact_metadata_write_failed", image_id=image_id, error=str(exc))
            return artifact

        return self._build_artifact(
            image_id,
            fmt,
            path,
            created_at=datetime.fromisoformat(record["created_at"]),
            owner_id=record.get("owner_id"),
        )

    def save(
        self,
        image_id: str,
        source_path: Path,
        fmt: SplatFormat | str | None = None,
        owner_id: Optional[str] = None,
    ) -> Artifact:
        """Copy ``source_path`` into its deterministic location, replacing any existing file."""

        fmt = SplatFormat(fmt or self.default_format)
        destination = self.path_for(image_id, fmt)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=destination.parent)
            try:
                with os.fdopen(fd, "wb") as tmp_file, open(source_path, "rb") as source:
                    shutil.copyfileobj(source, tmp_file)
                os.replace(tmp_name, destination)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            artifact = self._build_artifact(
                image_id,
                fmt,
                destination,
                created_at=datetime.now(timezone.utc),
                owner_id=owner_id,
            )
            self._write_metadata(destination, artifact)
        except OSError as exc:
            logger.error("artifact_save_failed", image_id=image_id, error=str(exc))
            raise StorageError(f"Failed to save splat file: {exc}", image_id=image_id) from exc

        logger.info("artifact_saved", image_id=image_id, uri=artifact.uri, size_bytes=artifact.size_bytes)
        return artifact

    def delete(self, image_id: str, fmt: SplatFormat | str | None = None) -> bool:
        """Remove artifact bytes and metadata. Returns whether anything was removed."""

        formats = [SplatFormat(fmt)] if fmt else list(SplatFormat)
        removed = False
        for candidate in formats:
            path = self.path_for(image_id, candidate)
            for target in (path, self._metadata_path(path)):
                try:
                    target.unlink()
                    removed = True
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    raise StorageError(f"Failed to delete {target}: {exc}", image_id=image_id) from exc

        if removed:
            logger.info("artifact_deleted", image_id=image_id)
        return removed

    def _build_artifact(
        self,
        image_id: str,
        fmt: SplatFormat,
        path: Path,
        created_at: datetime,
        owner_id: Optional[str],
    ) -> Artifact:
        uri = self.uri_for(image_id, fmt)
        return Artifact(
            image_id=image_id,
            format=fmt,
            uri=uri,
            path=path,
            url=f"{self.public_base_url}/{uri}",
            size_bytes=path.stat().st_size,
            created_at=created_at,
            owner_id=owner_id,
        )

    @staticmethod
    def _metadata_path(path: Path) -> Path:
        return path.with_name(f"{path.name}.json")

    def _read_metadata(self, path: Path) -> Optional[dict]:
        meta_path = self._metadata_path(path)
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("artifact_metadata_unreadable", path=str(meta_path), error=str(exc))
            return None

    def _write_metadata(self, path: Path, artifact: Artifact) -> None:
        meta_path = self._metadata_path(path)
        record = {
            "image_id": artifact.image_id,
            "format": artifact.format.value,
            "uri": artifact.uri,
            "owner_id": artifact.owner_id,
            "created_at": artifact.created_at.isoformat(),
        }
        fd, tmp_name = tempfile.mkstemp(prefix=f".{meta_path.name}.", dir=meta_path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record, handle)
            os.replace(tmp_name, meta_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
