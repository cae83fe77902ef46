"""Shared fixtures for splatgen tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import pytest

from splatgen.models.job import GenerationJob
from splatgen.services.artifact_store import ArtifactStore
from splatgen.services.generation_queue import GenerationQueue
from splatgen.services.generation_worker import GenerationWorker
from splatgen.services.source_images import SourceImageStore
from splatgen.services.splat_client import SplatServiceClient
from splatgen.services.state_tracker import InMemoryJobStateTracker
from splatgen.services.status import StatusQuery
from splatgen.services.viewer import LinkRenderer

SERVICE_URL = "http://sharp.test"


class RecordingDispatcher:
    """Delivery mechanism double that keeps every dispatched job."""

    def __init__(self) -> None:
        self.jobs: List[GenerationJob] = []
        self.error: Optional[Exception] = None

    def dispatch(self, job: GenerationJob) -> None:
        if self.error is not None:
            raise self.error
        self.jobs.append(job)

    def pending_count(self) -> int:
        return len(self.jobs)


class SplatServiceStub:
    """Request handler for ``httpx.MockTransport`` mimicking the generation service."""

    def __init__(self) -> None:
        self.health_payload: dict = {"status": "ok", "model_loaded": True}
        self.generate_status = 200
        self.generate_payload: dict = {"url": "/outputs/result.sog"}
        self.generate_error: Optional[Callable[[httpx.Request], Exception]] = None
        self.generate_gate: Optional[threading.Event] = None
        self.generate_entered = threading.Event()
        self.download_status = 200
        self.download_body = b"splat-bytes"
        self.requests: List[httpx.Request] = []
        self._lock = threading.Lock()

    @property
    def generate_calls(self) -> int:
        return sum(1 for request in self.requests if request.url.path == "/generate")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        if request.url.path == "/health":
            return httpx.Response(200, json=self.health_payload)

        if request.url.path == "/generate":
            self.generate_entered.set()
            if self.generate_gate is not None:
                self.generate_gate.wait(timeout=5)
            if self.generate_error is not None:
                raise self.generate_error(request)
            return httpx.Response(self.generate_status, json=self.generate_payload)

        return httpx.Response(self.download_status, content=self.download_body)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def tracker() -> InMemoryJobStateTracker:
    return InMemoryJobStateTracker()


@pytest.fixture
def artifact_store(storage_root: Path) -> ArtifactStore:
    return ArtifactStore(storage_root, "http://testserver/files", default_format="sog")


@pytest.fixture
def sources(storage_root: Path) -> SourceImageStore:
    return SourceImageStore(storage_root)


@pytest.fixture
def source_image(sources: SourceImageStore):
    return sources.register(b"\xff\xd8\xff\xe0fake-jpeg", "photo.jpg", owner_id="7", image_id="42")


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def service_stub() -> SplatServiceStub:
    return SplatServiceStub()


@pytest.fixture
def splat_client(service_stub: SplatServiceStub) -> SplatServiceClient:
    http_client = httpx.Client(transport=httpx.MockTransport(service_stub))
    return SplatServiceClient(SERVICE_URL, client=http_client)


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture
def queue(tracker, dispatcher, artifact_store) -> GenerationQueue:
    return GenerationQueue(tracker, dispatcher, artifact_store)


@pytest.fixture
def worker(tracker, sources, splat_client, artifact_store, scratch_dir) -> GenerationWorker:
    return GenerationWorker(tracker, sources, splat_client, artifact_store, scratch_dir=scratch_dir)


@pytest.fixture
def status_query(artifact_store, tracker) -> StatusQuery:
    return StatusQuery(artifact_store, tracker, LinkRenderer())
