"""Tracks which images are queued for or undergoing splat generation.

Two trackers share one interface: ``RedisJobStateTracker`` keeps the sets in
Redis so they survive restarts and are shared between the API and Celery
workers; ``InMemoryJobStateTracker`` is a lock-guarded process-local
equivalent used in development and tests. Each primitive is atomic on its
own. Sequences of primitives are not.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import Lock
from typing import Callable, Dict, Iterator, List, Optional

import redis

from splatgen.core.logging import get_logger

logger = get_logger(__name__)


class JobStateTracker(ABC):
    """Advisory ``queued`` / ``in_progress`` sets plus optional failure records."""

    @abstractmethod
    def mark_queued(self, image_id: str) -> None: ...

    @abstractmethod
    def unmark_queued(self, image_id: str) -> None: ...

    @abstractmethod
    def is_queued(self, image_id: str) -> bool: ...

    @abstractmethod
    def mark_in_progress(self, image_id: str) -> bool:
        """Claim ``image_id``. Returns False if another execution already holds it."""

    @abstractmethod
    def unmark_in_progress(self, image_id: str) -> None: ...

    @abstractmethod
    def is_in_progress(self, image_id: str) -> bool: ...

    @abstractmethod
    def queued_ids(self) -> List[str]: ...

    @abstractmethod
    def in_progress_ids(self) -> List[str]: ...

    @abstractmethod
    def reap_stale(self, max_age: float) -> List[str]:
        """Drop in-progress claims older than ``max_age`` seconds."""

    @abstractmethod
    def record_failure(self, image_id: str, message: str) -> None: ...

    @abstractmethod
    def failure_for(self, image_id: str) -> Optional[str]: ...

    @abstractmethod
    def clear_failure(self, image_id: str) -> None: ...

    @contextmanager
    def in_progress(self, image_id: str) -> Iterator[bool]:
        """Hold the in-progress claim for the duration of the block.

        Yields whether the claim was acquired. The claim is released on every
        exit path, but only by the execution that acquired it.
        """

        claimed = self.mark_in_progress(image_id)
        try:
            yield claimed
        finally:
            if claimed:
                self.unmark_in_progress(image_id)


class RedisJobStateTracker(JobStateTracker):
    """Tracker persisted in Redis under ``{prefix}:queued|in_progress|failed``."""

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "splatgen",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = client
        self._clock = clock
        self.queued_key = f"{prefix}:queued"
        self.in_progress_key = f"{prefix}:in_progress"
        self.failed_key = f"{prefix}:failed"

    @classmethod
    def from_url(cls, url: str, prefix: str = "splatgen") -> "RedisJobStateTracker":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def mark_queued(self, image_id: str) -> None:
        self._redis.sadd(self.queued_key, image_id)

    def unmark_queued(self, image_id: str) -> None:
        self._redis.srem(self.queued_key, image_id)

    def is_queued(self, image_id: str) -> bool:
        return bool(self._redis.sismember(self.queued_key, image_id))

    def mark_in_progress(self, image_id: str) -> bool:
        added = self._redis.zadd(self.in_progress_key, {image_id: self._clock()}, nx=True)
        return added == 1

    def unmark_in_progress(self, image_id: str) -> None:
        self._redis.zrem(self.in_progress_key, image_id)

    def is_in_progress(self, image_id: str) -> bool:
        return self._redis.zscore(self.in_progress_key, image_id) is not None

    def queued_ids(self) -> List[str]:
        return sorted(_decode(member) for member in self._redis.smembers(self.queued_key))

    def in_progress_ids(self) -> List[str]:
        return [_decode(member) for member in self._redis.zrange(self.in_progress_key, 0, -1)]

    def reap_stale(self, max_age: float) -> List[str]:
        cutoff = self._clock() - max_age
        # Read and remove in one MULTI/EXEC so a claim re-acquired in between survives.
        pipe = self._redis.pipeline(transaction=True)
        pipe.zrangebyscore(self.in_progress_key, "-inf", cutoff)
        pipe.zremrangebyscore(self.in_progress_key, "-inf", cutoff)
        stale, _ = pipe.execute()
        reaped = [_decode(member) for member in stale]
        if reaped:
            logger.warning("stale_in_progress_reaped", image_ids=reaped, max_age=max_age)
        return reaped

    def record_failure(self, image_id: str, message: str) -> None:
        self._redis.hset(self.failed_key, image_id, message)

    def failure_for(self, image_id: str) -> Optional[str]:
        value = self._redis.hget(self.failed_key, image_id)
        return _decode(value) if value is not None else None

    def clear_failure(self, image_id: str) -> None:
        self._redis.hdel(self.failed_key, image_id)


class InMemoryJobStateTracker(JobStateTracker):
    """Simple thread-safe tracker. Not durable across restarts."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = Lock()
        self._clock = clock
        self._queued: set[str] = set()
        self._in_progress: Dict[str, float] = {}
        self._failed: Dict[str, str] = {}

    def mark_queued(self, image_id: str) -> None:
        with self._lock:
            self._queued.add(image_id)

    def unmark_queued(self, image_id: str) -> None:
        with self._lock:
            self._queued.discard(image_id)

    def is_queued(self, image_id: str) -> bool:
        with self._lock:
            return image_id in self._queued

    def mark_in_progress(self, image_id: str) -> bool:
        with self._lock:
            if image_id in self._in_progress:
                return False
            self._in_progress[image_id] = self._clock()
            return True

    def unmark_in_progress(self, image_id: str) -> None:
        with self._lock:
            self._in_progress.pop(image_id, None)

    def is_in_progress(self, image_id: str) -> bool:
        with self._lock:
            return image_id in self._in_progress

    def queued_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._queued)

    def in_progress_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._in_progress, key=self._in_progress.__getitem__)

    def reap_stale(self, max_age: float) -> List[str]:
        cutoff = self._clock() - max_age
        with self._lock:
            reaped = [image_id for image_id, started in self._in_progress.items() if started <= cutoff]
            for image_id in reaped:
                del self._in_progress[image_id]
        if reaped:
            logger.warning("stale_in_progress_reaped", image_ids=reaped, max_age=max_age)
        return reaped

    def record_failure(self, image_id: str, message: str) -> None:
        with self._lock:
            self._failed[image_id] = message

    def failure_for(self, image_id: str) -> Optional[str]:
        with self._lock:
            return self._failed.get(image_id)

    def clear_failure(self, image_id: str) -> None:
        with self._lock:
            self._failed.pop(image_id, None)


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
