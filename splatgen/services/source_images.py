"""Filesystem-backed content store for source images."""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from splatgen.core.errors import NotFoundError
from splatgen.core.logging import get_logger
from splatgen.models.splat import SourceImage
from splatgen.services.artifact_store import validate_image_id

logger = get_logger(__name__)

IMAGE_DIRECTORY = "images"
ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".heic"}


class SourceImageStore:
    """Stores uploaded images at ``{root}/images/{image_id}/{filename}``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root) / IMAGE_DIRECTORY

    def register(
        self,
        content: bytes,
        filename: str,
        owner_id: Optional[str] = None,
        image_id: Optional[str] = None,
    ) -> SourceImage:
        """Persist image bytes and return the new source image record."""

        image_id = validate_image_id(image_id or uuid.uuid4().hex)
        safe_name = Path(filename or "image").name
        if Path(safe_name).suffix.lower() not in ALLOWED_SUFFIXES:
            safe_name = f"{Path(safe_name).stem or 'image'}.jpg"

        directory = self.root / image_id
        directory.mkdir(parents=True, exist_ok=True)
        image_path = directory / safe_name
        image_path.write_bytes(content)

        record = {"filename": safe_name, "owner_id": owner_id}
        fd, tmp_name = tempfile.mkstemp(prefix=".meta.", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(record, handle)
        os.replace(tmp_name, directory / "meta.json")

        logger.info("source_image_registered", image_id=image_id, filename=safe_name, size_bytes=len(content))
        return SourceImage(
            image_id=image_id,
            path=image_path,
            filename=safe_name,
            owner_id=owner_id,
            size_bytes=len(content),
        )

    def exists(self, image_id: str) -> bool:
        try:
            self.resolve(image_id)
        except NotFoundError:
            return False
        return True

    def resolve(self, image_id: str) -> SourceImage:
        """Return the image record with a readable path, or raise ``NotFoundError``."""

        image_id = validate_image_id(image_id)
        directory = self.root / image_id
        try:
            record = json.loads((directory / "meta.json").read_text(encoding="utf-8"))
            filename = record["filename"]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise NotFoundError(f"File {image_id} not found", image_id=image_id) from exc

        image_path = directory / filename
        if not image_path.is_file() or not os.access(image_path, os.R_OK):
            raise NotFoundError(f"Image file not accessible: {image_path}", image_id=image_id)

        return SourceImage(
            image_id=image_id,
            path=image_path,
            filename=filename,
            owner_id=record.get("owner_id"),
            size_bytes=image_path.stat().st_size,
        )
