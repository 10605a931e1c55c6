from __future__ import annotations

import asyncio
from pathlib import Path

from podify_contracts.podcast_job import JobStatus, ProgressEvent, Stage
from podify_podcast.application.ports import JobStore
from podify_podcast.application.use_cases import GeneratePodcastEpisode
from podify_podcast.infrastructure import metrics
from podify_podcast.infrastructure.logging import get_logger, job_context

log = get_logger(__name__)


class JobSupervisor:
    """Runs submitted jobs on a fixed pool of asyncio worker tasks.

    The Job Store is the only error channel: a failed run ends with status
    ``error`` and the exception text in ``Job.error``. Nothing raised by the
    pipeline escapes a worker task.
    """

    def __init__(
        self,
        *,
        job_store: JobStore,
        pipeline: GeneratePodcastEpisode,
        output_dir: str | Path,
        concurrency: int = 3,
        queue_size: int = 0,
    ) -> None:
        self.job_store = job_store
        self.pipeline = pipeline
        self.output_dir = Path(output_dir)
        self.concurrency = max(1, concurrency)
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"podify-worker-{i}") for i in range(self.concurrency)
        ]
        log.info("supervisor.start workers=%s", self.concurrency)

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        log.info("supervisor.stop")

    def submit(self, job_id: str) -> None:
        self._queue.put_nowait(job_id)
        metrics.set_queue_depth(self._queue.qsize())

    async def put(self, job_id: str) -> None:
        """Like ``submit`` but waits for room when the queue is bounded."""
        await self._queue.put(job_id)
        metrics.set_queue_depth(self._queue.qsize())

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self, idx: int) -> None:
        while True:
            job_id = await self._queue.get()
            metrics.set_queue_depth(self._queue.qsize())
            try:
                await self.run_job(job_id)
            finally:
                self._queue.task_done()

    async def run_job(self, job_id: str) -> None:
        with job_context(job_id):
            job = await asyncio.to_thread(self.job_store.get, job_id)
            if job is None:
                log.warning("supervisor.job_missing job_id=%s", job_id)
                return
            if job.is_terminal:
                log.warning("supervisor.job_already_finished job_id=%s status=%s", job_id, job.status.value)
                return
            if job.config is None:
                await self._update(job_id, status=JobStatus.ERROR, message="Job has no config", error="Job has no config")
                return

            await self._update(job_id, status=JobStatus.PROCESSING, message="Starting...")
            metrics.job_started()
            log.info("supervisor.job_start job_id=%s title=%s", job_id, job.config.title)

            # Step events arrive as separate tasks; the lock keeps store writes in arrival order.
            progress_lock = asyncio.Lock()
            finished = False

            async def on_progress(event: ProgressEvent) -> None:
                async with progress_lock:
                    if finished:
                        return
                    await self._update(
                        job_id,
                        status=JobStatus.PROCESSING,
                        stage=event.stage,
                        message=event.message,
                        progress=event.percent,
                    )

            try:
                result = await self.pipeline.generate_episode(job.config, self.output_dir, on_progress)
            except Exception as exc:
                metrics.job_failed()
                log.exception("supervisor.job_failed job_id=%s", job_id)
                message = str(exc) or exc.__class__.__name__
                async with progress_lock:
                    finished = True
                    await self._update(job_id, status=JobStatus.ERROR, message=message, error=message)
                return

            async with progress_lock:
                finished = True
                await self._update(
                    job_id,
                    status=JobStatus.COMPLETE,
                    progress=100,
                    stage=Stage.COMPLETE,
                    message="Episode complete!",
                    result=result,
                )
            metrics.job_succeeded()
            log.info("supervisor.job_complete job_id=%s slug=%s", job_id, result.slug)

    async def _update(self, job_id: str, **fields) -> None:
        await asyncio.to_thread(self.job_store.update, job_id, **fields)
