from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import redis
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from podify_contracts.podcast_job import (
    VOICE_PRESETS,
    EpisodeLength,
    Job,
    JobStatus,
    LlmProvider,
    PodcastConfig,
    PodcastFormat,
    Tone,
    TtsProvider,
)
from podify_podcast.infrastructure import metrics
from podify_podcast.infrastructure.logging import get_logger, setup_logging
from podify_podcast.infrastructure.settings import Settings, load_env

from podify_api.queue import dispatch_job
from podify_worker.supervisor import JobSupervisor
from podify_worker.wiring import Runtime

log = get_logger("podify_api")

MIN_CONTENT_CHARS = 50
DEFAULT_PRESET = "luna_and_sol"


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str | None = None
    title: str | None = None
    format: PodcastFormat = PodcastFormat.CONVERSATION
    duration: EpisodeLength = EpisodeLength.FIVE
    tone: Tone = Tone.EDUCATIONAL
    voices: str | None = Field(default=None, description="Voice preset name")
    tts: TtsProvider = TtsProvider.DEEPINFRA
    llm: LlmProvider = LlmProvider.OPENROUTER
    include_music: bool = Field(default=False, alias="includeMusic")
    instructions: str | None = None
    run_async: bool = Field(
        default=False,
        alias="async",
        description="Only create the job; the caller starts it with POST /v1/podcast/process/{job_id}",
    )

    def to_config(self, content: str) -> PodcastConfig:
        return PodcastConfig(
            content=content,
            title=(self.title or "").strip() or "Untitled Episode",
            format=self.format,
            duration=self.duration,
            tone=self.tone,
            voices=VOICE_PRESETS.get(self.voices or DEFAULT_PRESET, VOICE_PRESETS[DEFAULT_PRESET]),
            tts_provider=self.tts,
            llm_provider=self.llm,
            include_music=self.include_music,
            custom_instructions=self.instructions,
            source="text",
        )


def _job_payload(job: Job) -> dict[str, Any]:
    result = None
    if job.status == JobStatus.COMPLETE and job.result is not None:
        r = job.result
        result = {
            "slug": r.slug,
            "asset_url": r.asset_url,
            "audio_url": r.asset_url or f"/v1/podcast/episodes/{r.slug}/audio",
            "transcript": [line.model_dump(mode="json") for line in r.transcript],
            "duration_seconds": r.duration_seconds,
            "word_count": r.word_count,
            "cost_usd": r.cost_usd,
        }
    return {
        "id": job.id,
        "status": job.status.value,
        "progress": job.progress,
        "stage": job.stage.value if job.stage else None,
        "message": job.message,
        "result": result,
        "error": job.error,
    }


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_supervisor(request: Request) -> JobSupervisor | None:
    return request.app.state.supervisor


def _reject_if_at_capacity(runtime: Runtime) -> None:
    if runtime.job_store.is_at_capacity():
        metrics.job_rejected()
        raise HTTPException(status_code=429, detail="Too many concurrent jobs. Try again shortly.")


def _dispatch(job_id: str, runtime: Runtime, supervisor: JobSupervisor | None) -> None:
    try:
        dispatch_job(job_id, runtime=runtime, supervisor=supervisor)
    except (redis.RedisError, OSError) as exc:
        log.error("api.dispatch_failed job_id=%s error=%s", job_id, exc)
        message = f"Could not queue job: {exc}"
        runtime.job_store.update(job_id, status=JobStatus.ERROR, message=message, error=message)
        raise HTTPException(status_code=503, detail="Job queue unavailable") from exc


def create_app(runtime: Runtime | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rt = runtime
        if rt is None:
            load_env(Path.cwd() / ".env")
            settings = Settings.from_env()
            setup_logging(settings.log_level, fmt=settings.log_format)
            if settings.metrics_enabled:
                metrics.maybe_start_server(settings.metrics_port)
            rt = Runtime(settings)
        Path(rt.settings.output_dir).mkdir(parents=True, exist_ok=True)

        supervisor: JobSupervisor | None = None
        if rt.settings.queue_mode == "inline":
            supervisor = JobSupervisor(
                job_store=rt.job_store,
                pipeline=rt.pipeline,
                output_dir=rt.settings.output_dir,
                concurrency=rt.settings.worker_concurrency,
            )
            supervisor.start()
        app.state.runtime = rt
        app.state.supervisor = supervisor
        log.info("api.start queue_mode=%s job_store=%s", rt.settings.queue_mode, rt.settings.job_store)
        try:
            yield
        finally:
            if supervisor is not None:
                await supervisor.stop()

    app = FastAPI(title="Podify API", lifespan=lifespan)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/v1/podcast/generate", status_code=202)
    async def generate(
        body: GenerateRequest,
        runtime: Runtime = Depends(get_runtime),
        supervisor: JobSupervisor | None = Depends(get_supervisor),
    ) -> JSONResponse:
        _reject_if_at_capacity(runtime)
        if not body.content:
            raise HTTPException(status_code=400, detail="Provide content")
        if len(body.content) < MIN_CONTENT_CHARS:
            raise HTTPException(status_code=400, detail=f"Content too short (< {MIN_CONTENT_CHARS} chars)")
        config = body.to_config(body.content)

        # Admission is advisory; check again right before the job exists.
        _reject_if_at_capacity(runtime)
        job = runtime.job_store.create()
        runtime.job_store.update(job.id, config=config)

        if body.run_async:
            log.info("api.job_created job_id=%s mode=async", job.id)
        else:
            _dispatch(job.id, runtime, supervisor)
        return JSONResponse({"job_id": job.id, "status": JobStatus.PENDING.value}, status_code=202)

    @app.post("/v1/podcast/process/{job_id}", status_code=202)
    async def process(
        job_id: str,
        runtime: Runtime = Depends(get_runtime),
        supervisor: JobSupervisor | None = Depends(get_supervisor),
    ) -> JSONResponse:
        job = runtime.job_store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        if job.status != JobStatus.PENDING:
            raise HTTPException(status_code=409, detail="Job already started")
        if job.config is None:
            raise HTTPException(status_code=400, detail="Job has no config")

        runtime.job_store.update(job_id, status=JobStatus.PROCESSING, message="Starting...")
        _dispatch(job_id, runtime, supervisor)
        return JSONResponse({"job_id": job_id, "status": JobStatus.PROCESSING.value}, status_code=202)

    @app.get("/v1/podcast/status/{job_id}")
    def status(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
        job = runtime.job_store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return JSONResponse(_job_payload(job))

    @app.get("/v1/podcast/jobs/{job_id}/audio", response_model=None)
    def job_audio(job_id: str, runtime: Runtime = Depends(get_runtime)) -> Response:
        job = runtime.job_store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        if job.status != JobStatus.COMPLETE or job.result is None:
            raise HTTPException(status_code=404, detail="Audio not ready")
        path = Path(job.result.audio_path)
        if path.is_file():
            return FileResponse(path, media_type="audio/mpeg", filename="podcast.mp3")
        if job.result.asset_url:
            return RedirectResponse(job.result.asset_url)
        raise HTTPException(status_code=404, detail="Audio file not found on disk")

    @app.get("/v1/podcast/feed")
    def feed(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
        manifest = runtime.registry.read(runtime.settings.output_dir)
        return JSONResponse(manifest.model_dump(mode="json"))

    @app.post("/v1/podcast/feed/rebuild")
    async def rebuild_feed(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
        manifest = await asyncio.to_thread(runtime.registry.rebuild_from_disk, runtime.settings.output_dir)
        return JSONResponse({"episodes": len(manifest.episodes)})

    @app.get("/v1/podcast/episodes/{slug}/audio", response_model=None)
    def episode_audio(slug: str, runtime: Runtime = Depends(get_runtime)) -> Response:
        manifest = runtime.registry.read(runtime.settings.output_dir)
        episode = next((e for e in manifest.episodes if e.slug == slug), None)
        if episode is None:
            raise HTTPException(status_code=404, detail="Episode not found")
        path = Path(runtime.settings.output_dir) / episode.dir_name / episode.audio_file_name
        if path.is_file():
            return FileResponse(path, media_type="audio/mpeg", filename=episode.audio_file_name)
        if episode.asset_url:
            return RedirectResponse(episode.asset_url)
        raise HTTPException(status_code=404, detail="Audio not found")

    return app


app = create_app()
