"""Client for the external image-to-splat generation service."""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import httpx

from splatgen.core.errors import GenerationError, NotFoundError
from splatgen.core.logging import get_logger
from splatgen.models.job import GenerationOptions

logger = get_logger(__name__)


class SplatServiceClient:
    """Blocking, bounded wrapper over ``/health``, ``/generate`` and artifact download."""

    def __init__(
        self,
        base_url: str,
        generation_timeout: float = 60.0,
        download_timeout: float = 30.0,
        health_timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.generation_timeout = generation_timeout
        self.download_timeout = download_timeout
        self.health_timeout = health_timeout
        self._client = client or httpx.Client()

    def health_check(self) -> bool:
        """Return True when the service answers 200 with a loaded model."""

        try:
            response = self._client.get(f"{self.base_url}/health", timeout=self.health_timeout)
        except httpx.HTTPError as exc:
            logger.error("splat_service_health_check_failed", error=str(exc))
            return False

        if response.status_code != 200:
            logger.warning("splat_service_unhealthy", status_code=response.status_code)
            return False

        try:
            data = response.json()
        except ValueError:
            return False

        return isinstance(data, dict) and data.get("status") == "ok" and bool(data.get("model_loaded"))

    def generate(
        self,
        image_path: Path,
        options: GenerationOptions,
        timeout: Optional[float] = None,
    ) -> str:
        """Submit an image and wait for the service to return the artifact URL."""

        image_path = Path(image_path)
        if not image_path.is_file():
            logger.error("splat_source_missing", path=str(image_path))
            raise NotFoundError(f"Image file not found: {image_path}")

        form = {**options.overrides, "format": options.format.value}
        try:
            with image_path.open("rb") as handle:
                response = self._client.post(
                    f"{self.base_url}/generate",
                    files={"image": (image_path.name, handle)},
                    data=form,
                    timeout=timeout or self.generation_timeout,
                )
        except httpx.TimeoutException as exc:
            logger.error("splat_generation_timeout", path=str(image_path), error=str(exc))
            raise GenerationError(f"Splat generation timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.error("splat_generation_request_failed", path=str(image_path), error=str(exc))
            raise GenerationError(f"Failed to generate splat: {exc}") from exc
        except OSError as exc:
            raise NotFoundError(f"Image file not readable: {image_path}") from exc

        if response.status_code != 200:
            logger.error("splat_generation_rejected", status_code=response.status_code, body=response.text[:500])
            raise GenerationError(f"Generation service responded with HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationError("Generation service returned invalid JSON") from exc

        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise GenerationError("Splat generation failed or returned no URL")

        logger.info("splat_generated", path=str(image_path), url=url)
        return str(url)

    def download(self, splat_url: str, destination: Path, timeout: Optional[float] = None) -> bool:
        """Stream the artifact into ``destination``.

        Returns False on any failure. A partially written destination is
        removed before returning False.
        """

        destination = Path(destination)
        if not splat_url.startswith(("http://", "https://")):
            splat_url = urljoin(f"{self.base_url}/", splat_url.lstrip("/"))

        written = 0
        try:
            with self._client.stream("GET", splat_url, timeout=timeout or self.download_timeout) as response:
                if response.status_code != 200:
                    logger.error("splat_download_rejected", url=splat_url, status_code=response.status_code)
                    destination.unlink(missing_ok=True)
                    return False
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
                        written += len(chunk)
        except (httpx.HTTPError, OSError) as exc:
            logger.error("splat_download_failed", url=splat_url, error=str(exc))
            destination.unlink(missing_ok=True)
            return False

        if not written:
            logger.error("splat_download_empty", url=splat_url)
            destination.unlink(missing_ok=True)
            return False

        logger.info("splat_downloaded", url=splat_url, size_mb=round(written / 1024 / 1024, 2), destination=str(destination))
        return True

    def close(self) -> None:
        self._client.close()
