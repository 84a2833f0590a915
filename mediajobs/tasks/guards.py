import threading
from typing import Protocol

import redis
import structlog

logger = structlog.get_logger()


class InFlightGuard(Protocol):
    """Marks a job as having a transition in flight.

    ``acquire`` is an atomic test-and-set: it returns False when the job is
    already marked. ``claim`` sets the mark whether or not it is present,
    for jobs this process has just loaded and now owns.
    """

    def acquire(self, job_id: str) -> bool: ...

    def claim(self, job_id: str) -> None: ...

    def release(self, job_id: str) -> None: ...

    def is_held(self, job_id: str) -> bool: ...


class LocalInFlightGuard:
    def __init__(self) -> None:
        self._held: set[str] = set()
        self._lock = threading.Lock()

    def acquire(self, job_id: str) -> bool:
        with self._lock:
            if job_id in self._held:
                return False
            self._held.add(job_id)
            return True

    def claim(self, job_id: str) -> None:
        with self._lock:
            self._held.add(job_id)

    def release(self, job_id: str) -> None:
        with self._lock:
            self._held.discard(job_id)

    def is_held(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._held


class RedisInFlightGuard:
    """Guard shared between processes through a Redis ``SET NX EX`` key.

    The TTL bounds how long a crashed process can keep a job marked.
    """

    def __init__(self, client: redis.Redis, ttl: int = 1800, prefix: str = "inflight:job:") -> None:
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl: int = 1800) -> "RedisInFlightGuard":
        return cls(redis.from_url(url), ttl=ttl)

    def _key(self, job_id: str) -> str:
        return f"{self.prefix}{job_id}"

    def acquire(self, job_id: str) -> bool:
        return bool(self.client.set(self._key(job_id), "1", nx=True, ex=self.ttl))

    def claim(self, job_id: str) -> None:
        # Overwrites a mark left behind by a process that died mid-transition
        self.client.set(self._key(job_id), "1", ex=self.ttl)

    def release(self, job_id: str) -> None:
        try:
            self.client.delete(self._key(job_id))
        except redis.exceptions.RedisError as e:
            logger.warning("inflight_release_failed", job_id=job_id, error=str(e))

    def is_held(self, job_id: str) -> bool:
        return bool(self.client.exists(self._key(job_id)))


def build_guard(settings) -> InFlightGuard:
    if settings.inflight_backend == "redis":
        return RedisInFlightGuard.from_url(settings.redis_url, ttl=settings.inflight_ttl_seconds)
    return LocalInFlightGuard()
