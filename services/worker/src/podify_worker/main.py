from __future__ import annotations

import asyncio
from pathlib import Path

import redis

from podify_podcast.infrastructure import metrics
from podify_podcast.infrastructure.logging import get_logger, setup_logging
from podify_podcast.infrastructure.settings import Settings, load_env

from podify_worker import dir_queue, redis_queue
from podify_worker.supervisor import JobSupervisor
from podify_worker.wiring import Runtime

log = get_logger("podify_worker")


def _next_job(runtime: Runtime) -> str | None:
    s = runtime.settings
    if s.queue_mode == "redis":
        payload = redis_queue.dequeue(runtime.redis, s.queue_redis_key)
    else:
        payload = dir_queue.dequeue(s.queue_dir)
    return payload.get("job_id") if payload else None


def _update_queue_metrics(runtime: Runtime) -> None:
    s = runtime.settings
    try:
        if s.queue_mode == "redis":
            depth = redis_queue.queue_depth(runtime.redis, s.queue_redis_key)
        else:
            depth = dir_queue.queue_depth(s.queue_dir)
    except (redis.RedisError, OSError) as exc:
        log.debug("worker.queue_depth_failed error=%s", exc)
        return
    metrics.set_queue_depth(depth)


async def run_worker(runtime: Runtime, supervisor: JobSupervisor, *, stop: asyncio.Event | None = None) -> None:
    """Feed jobs from the external queue into the supervisor until ``stop`` is set."""
    s = runtime.settings
    stop = stop or asyncio.Event()
    supervisor.start()
    log.info("worker.start queue_mode=%s concurrency=%s", s.queue_mode, supervisor.concurrency)
    try:
        while not stop.is_set():
            _update_queue_metrics(runtime)
            try:
                job_id = await asyncio.to_thread(_next_job, runtime)
            except (redis.RedisError, OSError) as exc:
                log.warning("worker.dequeue_failed error=%s", exc)
                job_id = None
            if not job_id:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=s.queue_poll_interval_s)
                except asyncio.TimeoutError:
                    pass
                continue
            # Drop any cached copy so the job is read fresh from the shared store.
            runtime.job_store.forget(job_id)
            await supervisor.put(job_id)
        await supervisor.join()
    finally:
        await supervisor.stop()


def main() -> None:
    load_env(Path.cwd() / ".env")
    settings = Settings.from_env()
    setup_logging(settings.log_level, fmt=settings.log_format)
    if settings.metrics_enabled:
        metrics.maybe_start_server(settings.metrics_port)
    if settings.queue_mode == "inline":
        log.warning("worker.inline_mode jobs are run by the API process; set QUEUE_MODE=redis or dir")
        return

    runtime = Runtime(settings)
    Path(settings.output_dir).mkdir(parents=True, exist_ok=True)

    async def _run() -> None:
        supervisor = JobSupervisor(
            job_store=runtime.job_store,
            pipeline=runtime.pipeline,
            output_dir=settings.output_dir,
            concurrency=settings.worker_concurrency,
            queue_size=settings.worker_concurrency,
        )
        await run_worker(runtime, supervisor)

    asyncio.run(_run())


if __name__ == "__main__":
    main()
