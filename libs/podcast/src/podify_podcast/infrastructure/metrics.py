from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)

_JOB_STARTED = Counter("podify_job_started_total", "Jobs started")
_JOB_SUCCEEDED = Counter("podify_job_succeeded_total", "Jobs succeeded")
_JOB_FAILED = Counter("podify_job_failed_total", "Jobs failed")
_JOB_REJECTED = Counter("podify_job_rejected_total", "Generation requests rejected at capacity")
_CLIPS = Counter("podify_tts_clips_total", "Synthesized clips by outcome", ["outcome"])
_STAGE_SEC = Histogram(
    "podify_stage_seconds",
    "Stage durations in seconds",
    ["stage"],
    buckets=(0.1, 0.5, 1, 2, 4, 8, 16, 32, 60, 120, 300, 600),
)
_QUEUE_DEPTH = Gauge("podify_queue_depth", "Queue depth")

_server_started = False


def maybe_start_server(port: int) -> None:
    global _server_started
    if _server_started:
        return
    try:
        start_http_server(port)
        _server_started = True
    except OSError as exc:
        log.warning("metrics.server_failed port=%s error=%s", port, exc)


def job_started() -> None:
    _JOB_STARTED.inc()


def job_succeeded() -> None:
    _JOB_SUCCEEDED.inc()


def job_failed() -> None:
    _JOB_FAILED.inc()


def job_rejected() -> None:
    _JOB_REJECTED.inc()


def clip_synthesized() -> None:
    _CLIPS.labels(outcome="ok").inc()


def clip_failed() -> None:
    _CLIPS.labels(outcome="failed").inc()


def observe_stage(stage: str, duration_sec: float) -> None:
    _STAGE_SEC.labels(stage=stage).observe(max(0.0, duration_sec))


def set_queue_depth(depth: int) -> None:
    _QUEUE_DEPTH.set(depth)
