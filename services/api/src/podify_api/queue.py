from __future__ import annotations

from podify_podcast.infrastructure.logging import get_logger

from podify_worker import dir_queue, redis_queue
from podify_worker.supervisor import JobSupervisor
from podify_worker.wiring import Runtime

log = get_logger(__name__)


def dispatch_job(job_id: str, *, runtime: Runtime, supervisor: JobSupervisor | None) -> None:
    """Hand a stored job to whoever runs it: the in-process supervisor or an external worker."""
    s = runtime.settings
    if s.queue_mode == "inline":
        if supervisor is None:
            raise RuntimeError("QUEUE_MODE=inline needs a running supervisor")
        supervisor.submit(job_id)
    elif s.queue_mode == "redis":
        redis_queue.enqueue(runtime.redis, s.queue_redis_key, job_id=job_id)
    else:
        dir_queue.enqueue(s.queue_dir, job_id)

    if s.queue_mode != "inline":
        # The worker owns the job from here on; later reads must hit the shared store.
        runtime.job_store.forget(job_id)
    log.info("api.dispatched job_id=%s queue_mode=%s", job_id, s.queue_mode)
