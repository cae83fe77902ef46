"""Client-side poller for the splat status endpoint.

Issues a status request immediately and then every ``interval`` seconds until
the splat is ``complete``, generation has ``failed``, the caller cancels, or
``timeout`` seconds have elapsed. Stopping never cancels the server-side
worker.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from splatgen.core.config import Settings, get_settings
from splatgen.core.logging import get_logger

logger = get_logger(__name__)

TERMINAL_STATUSES = frozenset({"complete", "failed"})


@dataclass
class PollOutcome:
    status: str
    requests: int
    elapsed: float
    response: Optional[Dict] = None

    @property
    def timed_out(self) -> bool:
        return self.status == "timeout"


class GenerationPoller:
    """Polls ``{base_url}/splats/{image_id}/status`` until a terminal status."""

    def __init__(
        self,
        base_url: str,
        interval: float = 3.0,
        timeout: float = 300.0,
        client: httpx.Client | None = None,
        headers: Optional[Dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.interval = interval
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=10.0)
        self._headers = headers or {}
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        base_url: str,
        app_settings: Optional[Settings] = None,
        **kwargs,
    ) -> "GenerationPoller":
        """Build a poller using the configured interval, timeout and API token."""

        app_settings = app_settings or get_settings()
        headers = dict(kwargs.pop("headers", None) or {})
        if app_settings.auth_jwt_secret:
            headers.setdefault(app_settings.auth_token_header, app_settings.auth_jwt_secret)
        return cls(
            base_url,
            interval=app_settings.poll_interval,
            timeout=app_settings.poll_timeout,
            headers=headers,
            **kwargs,
        )

    def poll(
        self,
        image_id: str,
        cancel_event: threading.Event | None = None,
        on_status: Callable[[Dict], None] | None = None,
    ) -> PollOutcome:
        started = self._clock()
        requests = 0
        last: Optional[Dict] = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return PollOutcome("cancelled", requests, self._clock() - started, last)

            elapsed = self._clock() - started
            if elapsed >= self.timeout:
                logger.info("splat_poll_timeout", image_id=image_id, requests=requests)
                return PollOutcome("timeout", requests, elapsed, last)

            payload = self._fetch(image_id)
            requests += 1
            if payload is not None:
                last = payload
                if on_status is not None:
                    on_status(payload)
                status = payload.get("status")
                if status == "complete" and payload.get("splat_url"):
                    return PollOutcome("complete", requests, self._clock() - started, payload)
                if status == "failed":
                    return PollOutcome("failed", requests, self._clock() - started, payload)

            remaining = self.timeout - (self._clock() - started)
            if remaining <= 0:
                continue
            if self._wait(min(self.interval, remaining), cancel_event):
                return PollOutcome("cancelled", requests, self._clock() - started, last)

    def _wait(self, seconds: float, cancel_event: threading.Event | None) -> bool:
        """Sleep between polls. Returns True when cancelled while waiting."""

        if self._sleep is not None:
            self._sleep(seconds)
            return cancel_event is not None and cancel_event.is_set()
        if cancel_event is not None:
            return cancel_event.wait(seconds)
        time.sleep(seconds)
        return False

    def _fetch(self, image_id: str) -> Optional[Dict]:
        url = f"{self.base_url}/splats/{image_id}/status"
        try:
            response = self._client.get(url, headers=self._headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("splat_poll_error", image_id=image_id, error=str(exc))
            return None

        if not isinstance(payload, dict):
            logger.warning("splat_poll_unexpected_body", image_id=image_id, body_type=type(payload).__name__)
            return None
        return payload
