from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterable

import redis
from pydantic import ValidationError

from podify_contracts.podcast_job import ACTIVE_STATUSES, Job
from podify_podcast.application.ports import JobStore
from podify_podcast.infrastructure.logging import get_logger
from podify_podcast.infrastructure.settings import Settings

log = get_logger(__name__)


class InMemoryJobStore(JobStore):
    """Process-local job records with staleness-aware admission control.

    Jobs older than ``stale_after_s`` stop counting towards capacity even if
    they never reached a terminal status, so a worker that died mid-run does
    not block admission forever. Records older than ``ttl_s`` are pruned when
    the next job is created.
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 3,
        stale_after_s: float = 300.0,
        ttl_s: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_concurrent = max_concurrent
        self.stale_after_s = stale_after_s
        self.ttl_s = ttl_s
        self.clock = clock
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self) -> Job:
        job = Job(created_at=self.clock())
        with self._lock:
            self._prune_expired(job.created_at)
            self._jobs[job.id] = job
        self._persist(job)
        return job

    def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        if job is not None:
            return job
        return self._fetch(job_id)

    def update(self, job_id: str, **fields: Any) -> None:
        with self._lock:
            job = self._jobs.get(job_id) or self._fetch(job_id)
            if job is None:
                log.debug("jobs.update_missing job_id=%s", job_id)
                return
            updated = Job.model_validate({**job.model_dump(), **fields})
            self._jobs[job_id] = updated
        self._persist(updated)

    def forget(self, job_id: str) -> None:
        """Drop any cached copy of ``job_id``. No-op here: this dict is the only copy."""

    def active_count(self) -> int:
        return self._count_active(self._jobs.values())

    def is_at_capacity(self) -> bool:
        return self.active_count() >= self.max_concurrent

    def _count_active(self, jobs: Iterable[Job]) -> int:
        now = self.clock()
        return sum(
            1
            for job in jobs
            if job.status in ACTIVE_STATUSES and now - job.created_at < self.stale_after_s
        )

    def _prune_expired(self, now: float) -> None:
        expired = [job_id for job_id, job in self._jobs.items() if now - job.created_at >= self.ttl_s]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            log.debug("jobs.pruned count=%s", len(expired))

    def _fetch(self, job_id: str) -> Job | None:
        return None

    def _persist(self, job: Job) -> None:
        return None


class RedisJobStore(InMemoryJobStore):
    """Write-through job store shared by every process pointing at the same Redis.

    The local dict stays authoritative for jobs this process wrote; anything
    else is read from Redis on demand.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "podify",
        ttl_s: int = 3600,
        **kwargs: Any,
    ) -> None:
        super().__init__(ttl_s=ttl_s, **kwargs)
        self.client = client
        self.key_prefix = key_prefix

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:jobs"

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}:job:{job_id}"

    def forget(self, job_id: str) -> None:
        """Drop the local copy so later reads go to Redis."""
        with self._lock:
            self._jobs.pop(job_id, None)

    def _fetch(self, job_id: str) -> Job | None:
        try:
            raw = self.client.get(self._key(job_id))
        except redis.RedisError as exc:
            log.warning("jobs.fetch_failed job_id=%s error=%s", job_id, exc)
            return None
        return self._decode(raw)

    def _persist(self, job: Job) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.set(self._key(job.id), job.model_dump_json(), ex=self.ttl_s)
            pipe.zadd(self.index_key, {job.id: job.created_at})
            pipe.execute()
        except redis.RedisError as exc:
            log.error("jobs.persist_failed job_id=%s error=%s", job.id, exc)

    def active_count(self) -> int:
        now = self.clock()
        try:
            self.client.zremrangebyscore(self.index_key, "-inf", now - self.ttl_s)
            ids = [_as_str(i) for i in self.client.zrangebyscore(self.index_key, f"({now - self.stale_after_s}", "+inf")]
            raws = self.client.mget([self._key(i) for i in ids]) if ids else []
        except redis.RedisError as exc:
            log.warning("jobs.capacity_fallback error=%s", exc)
            return super().active_count()

        jobs: dict[str, Job] = {}
        for job_id, raw in zip(ids, raws):
            job = self._jobs.get(job_id) or self._decode(raw)
            if job is not None:
                jobs[job_id] = job
        return self._count_active(jobs.values())

    def _decode(self, raw: Any) -> Job | None:
        if raw is None:
            return None
        try:
            return Job.model_validate_json(raw)
        except ValidationError as exc:
            log.warning("jobs.decode_failed error=%s", exc)
            return None


def _as_str(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, (bytes, bytearray)) else str(value)


def build_job_store(settings: Settings, *, client: redis.Redis | None = None) -> InMemoryJobStore:
    limits = {
        "max_concurrent": settings.max_concurrent_jobs,
        "stale_after_s": settings.job_stale_after_s,
        "ttl_s": settings.job_ttl_s,
    }
    if settings.job_store == "redis":
        return RedisJobStore(
            client or redis.Redis.from_url(settings.redis_url),
            key_prefix=settings.redis_key_prefix,
            **limits,
        )
    return InMemoryJobStore(**limits)
