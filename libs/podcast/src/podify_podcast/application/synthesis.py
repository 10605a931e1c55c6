from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

from podify_contracts.podcast_job import PodcastConfig, ScriptLine
from podify_podcast.application.ports import SpeechSynthesizer, StepProgress
from podify_podcast.domain.models import AudioClip
from podify_podcast.infrastructure import metrics
from podify_podcast.infrastructure.logging import get_logger
from podify_podcast.infrastructure.text.normalize import prepare_for_tts

log = get_logger(__name__)

AUDIO_START_PCT = 30
AUDIO_SPAN_PCT = 50


def clip_file_name(idx: int, line: ScriptLine) -> str:
    return f"clip_{idx:03d}_{line.speaker.value}.mp3"


class SynthesisScheduler:
    """Turns script lines into clip files with at most ``concurrency`` requests in flight.

    A new request is admitted as soon as any in-flight one finishes. Results
    are written into a pre-sized list by line index, so the returned clips keep
    script order no matter which finishes first. A failed line is logged and
    dropped; the run itself never fails on a per-line error.
    """

    def __init__(self, concurrency: int = 6) -> None:
        self.concurrency = max(1, concurrency)

    async def synthesize(
        self,
        lines: List[ScriptLine],
        config: PodcastConfig,
        *,
        synthesizer: SpeechSynthesizer,
        clips_dir: Path,
        on_progress: StepProgress | None = None,
    ) -> List[AudioClip]:
        total = len(lines)
        if total == 0:
            return []
        clips_dir.mkdir(parents=True, exist_ok=True)
        log.info(
            "tts.start clips=%s concurrency=%s provider=%s",
            total,
            self.concurrency,
            config.tts_provider.value,
        )

        results: list[AudioClip | None] = [None] * total
        done = 0

        async def one(idx: int) -> None:
            line = lines[idx]
            voice = config.voice_for(line.speaker)
            path = clips_dir / clip_file_name(idx, line)
            try:
                speech = await synthesizer.synthesize(prepare_for_tts(line.text), voice)
                await asyncio.to_thread(path.write_bytes, speech.audio)
            except Exception as exc:
                metrics.clip_failed()
                log.warning("tts.clip_failed idx=%s speaker=%s error=%s", idx, line.speaker.value, exc)
                return
            metrics.clip_synthesized()
            results[idx] = AudioClip(speaker=line.speaker, file_path=str(path), duration_ms=speech.duration_ms)

        in_flight: set[asyncio.Task] = set()
        next_idx = 0
        while next_idx < total or in_flight:
            while next_idx < total and len(in_flight) < self.concurrency:
                in_flight.add(asyncio.create_task(one(next_idx)))
                next_idx += 1
            finished, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for _ in finished:
                done += 1
                if on_progress:
                    pct = AUDIO_START_PCT + round(done / total * AUDIO_SPAN_PCT)
                    on_progress(f"Generating audio clip {done}/{total}", pct)

        clips = [clip for clip in results if clip is not None]
        log.info("tts.done clips=%s failed=%s", len(clips), total - len(clips))
        if on_progress:
            on_progress(f"Audio generated: {len(clips)} clips", AUDIO_START_PCT + AUDIO_SPAN_PCT)
        return clips
