from __future__ import annotations

import asyncio
import inspect

from podify_contracts.podcast_job import ProgressEvent, Stage
from podify_podcast.application.ports import OnProgress, StepProgress
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


class ProgressReporter:
    """Delivers pipeline progress to an optional caller callback.

    Two tiers:

    * ``boundary`` events mark a stage transition. The producer awaits
      delivery, and callback errors propagate.
    * ``step`` events report intra-stage progress. They are dispatched as
      background tasks and any failure is logged and dropped.

    Pending step deliveries are drained before each boundary event so the
    observer sees events in order.
    """

    def __init__(self, callback: OnProgress | None = None) -> None:
        self.callback = callback
        self._pending: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def boundary(self, stage: Stage, message: str, percent: int) -> None:
        self._loop = asyncio.get_running_loop()
        await self.drain()
        if self.callback is None:
            return
        result = self.callback(ProgressEvent(stage=stage, message=message, percent=percent))
        if inspect.isawaitable(result):
            await result

    def step(self, stage: Stage, message: str, percent: int) -> None:
        if self.callback is None:
            return
        if not _in_event_loop() and self._loop is not None:
            # Called from a worker thread (e.g. audio assembly); hop back onto the loop.
            self._loop.call_soon_threadsafe(self.step, stage, message, percent)
            return
        event = ProgressEvent(stage=stage, message=message, percent=max(0, min(100, percent)))
        try:
            result = self.callback(event)
        except Exception as exc:
            log.debug("progress.step_failed stage=%s error=%s", stage.value, exc)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._settle)

    def for_stage(self, stage: Stage) -> StepProgress:
        def report(message: str, percent: int) -> None:
            self.step(stage, message, percent)

        return report

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _settle(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.debug("progress.step_failed error=%s", exc)


def _in_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
