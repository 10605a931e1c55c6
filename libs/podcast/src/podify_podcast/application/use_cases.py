from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from podify_contracts.errors import ConfigurationError, PodifyError, ProviderError
from podify_contracts.feed import EpisodeMeta
from podify_contracts.podcast_job import PodcastConfig, PodcastResult, ScriptLine, Stage, TtsProvider
from podify_podcast.application.ports import AudioAssembler, OnProgress, ProviderRegistry, ScriptWriter
from podify_podcast.application.progress import ProgressReporter
from podify_podcast.application.registry import EpisodeRegistry
from podify_podcast.application.synthesis import SynthesisScheduler
from podify_podcast.infrastructure import metrics
from podify_podcast.infrastructure.logging import get_logger
from podify_podcast.infrastructure.storage.fs_store import EpisodeWorkspace
from podify_podcast.infrastructure.text.normalize import excerpt, slugify, word_count

log = get_logger(__name__)

# USD per million characters sent to TTS.
TTS_COST_PER_M_CHARS: dict[TtsProvider, float] = {
    TtsProvider.DEEPINFRA: 0.62,
    TtsProvider.INFERENCE: 1.0,
    TtsProvider.OPENAI: 15.0,
}
DEFAULT_TTS_COST_PER_M_CHARS = 1.0
LLM_COST_USD = 0.03


def episode_slug(title: str) -> str:
    return f"{slugify(title)}-{uuid.uuid4().hex[:6]}"


def estimate_cost(script: List[ScriptLine], provider: TtsProvider) -> float:
    chars = sum(len(line.text) for line in script)
    rate = TTS_COST_PER_M_CHARS.get(provider, DEFAULT_TTS_COST_PER_M_CHARS)
    return chars / 1_000_000 * rate + LLM_COST_USD


def readable_transcript(script: List[ScriptLine], config: PodcastConfig) -> str:
    return "\n\n".join(f"{config.host_name(line.speaker)}: {line.text}" for line in script)


class GeneratePodcastEpisode:
    """Runs one episode through scripting, synthesis, assembly and registration.

    Business flow lives here; the API and worker only wire adapters and relay
    progress. Stage boundaries (0/30/80/100) are awaited on the caller's
    callback. Intra-stage progress is fire-and-forget.
    """

    def __init__(
        self,
        *,
        providers: ProviderRegistry,
        scheduler: SynthesisScheduler,
        assembler: AudioAssembler,
        registry: EpisodeRegistry,
    ) -> None:
        self.providers = providers
        self.scheduler = scheduler
        self.assembler = assembler
        self.registry = registry

    async def generate_episode(
        self,
        config: PodcastConfig,
        output_dir: str | Path,
        on_progress: OnProgress | None = None,
    ) -> PodcastResult:
        if not config.content.strip():
            raise ConfigurationError("Content is required")
        if not config.title.strip():
            raise ConfigurationError("Title is required")
        writer = self.providers.script_writer(config)
        synthesizer = self.providers.synthesizer(config)

        output_dir = Path(output_dir)
        workspace = EpisodeWorkspace(output_dir, episode_slug(config.title))
        workspace.create()
        progress = ProgressReporter(on_progress)
        started = time.monotonic()
        log.info(
            "pipeline.start slug=%s format=%s duration=%s tone=%s content_chars=%s",
            workspace.slug,
            config.format.value,
            config.duration.value,
            config.tone.value,
            len(config.content),
        )

        try:
            t0 = time.monotonic()
            await progress.boundary(Stage.SCRIPTING, "Generating script...", 0)
            script = await writer.write_script(config, progress.for_stage(Stage.SCRIPTING))
            workspace.write_json("transcript.json", [line.model_dump(mode="json") for line in script])
            workspace.write_text("transcript.txt", readable_transcript(script, config))
            metrics.observe_stage(Stage.SCRIPTING.value, time.monotonic() - t0)

            t0 = time.monotonic()
            await progress.boundary(Stage.AUDIO, "Generating audio clips...", 30)
            clips = await self.scheduler.synthesize(
                script,
                config,
                synthesizer=synthesizer,
                clips_dir=workspace.clips_dir,
                on_progress=progress.for_stage(Stage.AUDIO),
            )
            if not clips:
                raise ProviderError("No audio clips generated; check TTS provider config")
            metrics.observe_stage(Stage.AUDIO.value, time.monotonic() - t0)

            t0 = time.monotonic()
            await progress.boundary(Stage.ASSEMBLY, "Assembling podcast...", 80)
            assembled = await asyncio.to_thread(
                self.assembler.assemble,
                clips=clips,
                config=config,
                work_dir=str(workspace.work_dir),
                out_path=str(workspace.audio_path),
                on_progress=progress.for_stage(Stage.ASSEMBLY),
            )
            metrics.observe_stage(Stage.ASSEMBLY.value, time.monotonic() - t0)

            words = word_count(line.text for line in script)
            cost = estimate_cost(script, config.tts_provider)
            description = await self._describe(writer, config, script)
            stored = await asyncio.to_thread(
                self._register, output_dir, workspace, config, description, assembled.duration_seconds, words, cost
            )
        except BaseException:
            # Steps already dispatched must land before the caller records the failure.
            await progress.drain()
            raise
        finally:
            self._cleanup(workspace)

        log.info(
            "pipeline.complete slug=%s duration_s=%.1f words=%s cost_usd=%.4f elapsed_s=%.1f",
            workspace.slug,
            assembled.duration_seconds,
            words,
            cost,
            time.monotonic() - started,
        )
        await progress.boundary(Stage.COMPLETE, "Episode complete!", 100)
        return PodcastResult(
            audio_path=assembled.path,
            slug=stored.slug if stored else workspace.slug,
            asset_url=stored.asset_url if stored else None,
            transcript=script,
            duration_seconds=assembled.duration_seconds,
            word_count=words,
            cost_usd=cost,
        )

    async def _describe(self, writer: ScriptWriter, config: PodcastConfig, script: List[ScriptLine]) -> str:
        try:
            description = await writer.describe(title=config.title, transcript=script)
        except PodifyError as exc:
            log.warning("pipeline.description_failed error=%s", exc)
            description = ""
        return description or excerpt(" ".join(line.text for line in script))

    def _register(
        self,
        output_dir: Path,
        workspace: EpisodeWorkspace,
        config: PodcastConfig,
        description: str,
        duration_seconds: float,
        words: int,
        cost: float,
    ) -> EpisodeMeta | None:
        try:
            audio = workspace.audio_path
            episode = EpisodeMeta(
                guid=str(uuid.uuid4()),
                slug=workspace.slug,
                dir_name=workspace.dir_name,
                title=config.title,
                description=description,
                pub_date=datetime.now(timezone.utc).isoformat(),
                duration_seconds=duration_seconds,
                file_size_bytes=audio.stat().st_size,
                audio_file_name=audio.name,
                word_count=words,
                cost_usd=cost,
                asset_url=self.registry.upload_audio(name=f"{workspace.dir_name}.mp3", path=audio),
                source=config.source,
            )
            return self.registry.append(output_dir, episode)
        except (PodifyError, OSError) as exc:
            log.error("pipeline.registration_failed slug=%s error=%s", workspace.slug, exc)
            return None

    def _cleanup(self, workspace: EpisodeWorkspace) -> None:
        try:
            workspace.cleanup()
        except PodifyError as exc:
            log.warning("pipeline.cleanup_failed error=%s", exc)
