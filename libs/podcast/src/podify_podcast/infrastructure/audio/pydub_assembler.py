from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, List

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError
from pydub.utils import ratio_to_db

from podify_contracts.errors import AssemblyError
from podify_contracts.podcast_job import PodcastConfig
from podify_podcast.application.ports import AudioAssembler, StepProgress
from podify_podcast.domain.models import AssemblyResult, AudioClip
from podify_podcast.infrastructure.audio.probe import probe_duration_seconds
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)

SAME_SPEAKER_GAP_MS = 300
SPEAKER_CHANGE_GAP_MS = 800
FRAME_RATE = 44100
CHANNELS = 2
SAMPLE_WIDTH = 2  # 16-bit PCM
BITRATE = "192k"
MUSIC_VOLUME = 0.10

MUSIC_FILE = "ambient-cosmic.mp3"
INTRO_FILE = "intro.mp3"
OUTRO_FILE = "outro.mp3"

_AUDIO_ERRORS = (OSError, CouldntDecodeError, CouldntEncodeError, IndexError, ValueError)


def gap_ms(current: AudioClip, nxt: AudioClip) -> int:
    return SPEAKER_CHANGE_GAP_MS if current.speaker != nxt.speaker else SAME_SPEAKER_GAP_MS


class PydubAudioAssembler(AudioAssembler):
    """Builds the final episode file from ordered clips (ffmpeg via pydub).

    1. dialogue: every clip normalized to 44.1 kHz stereo 16-bit, joined with
       speaker-aware silences. Mandatory; failures raise AssemblyError.
    2. music bed (optional): looped under the dialogue at a fixed low volume.
    3. intro/outro (optional): concatenated around the main track.

    Steps 2 and 3 degrade to passing the previous track through.
    """

    def __init__(
        self,
        *,
        assets_dir: str | Path = "assets/audio",
        probe: Callable[[str | Path], float] = probe_duration_seconds,
    ) -> None:
        self.assets_dir = Path(assets_dir)
        self.probe = probe

    def assemble(
        self,
        *,
        clips: List[AudioClip],
        config: PodcastConfig,
        work_dir: str,
        out_path: str,
        on_progress: StepProgress | None = None,
    ) -> AssemblyResult:
        report = on_progress or (lambda message, percent: None)
        work = Path(work_dir)
        work.mkdir(parents=True, exist_ok=True)
        report("Assembling podcast...", 82)

        dialogue_path = work / "dialogue.mp3"
        self._build_dialogue(clips, dialogue_path)
        log.info("audio.dialogue_ready clips=%s path=%s", len(clips), dialogue_path)
        report("Dialogue track assembled", 87)

        main_path = dialogue_path
        if config.include_music:
            mixed = self._mix_music(dialogue_path, work / "mixed.mp3")
            if mixed is not None:
                main_path = mixed
                report("Background music mixed", 90)

        out = Path(out_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        self._add_intro_outro(main_path, out)

        duration = self.probe(out)
        log.info("audio.assembled path=%s duration_s=%.1f", out, duration)
        report("Assembly complete", 95)
        return AssemblyResult(path=str(out), duration_seconds=duration)

    def _build_dialogue(self, clips: List[AudioClip], out: Path) -> None:
        if not clips:
            raise AssemblyError("No audio clips to assemble")
        try:
            combined = AudioSegment.empty()
            for idx, clip in enumerate(clips):
                seg = AudioSegment.from_file(clip.file_path)
                combined += seg.set_frame_rate(FRAME_RATE).set_channels(CHANNELS).set_sample_width(SAMPLE_WIDTH)
                if idx < len(clips) - 1:
                    combined += AudioSegment.silent(duration=gap_ms(clip, clips[idx + 1]), frame_rate=FRAME_RATE)
            combined.export(str(out), format="mp3", bitrate=BITRATE)
        except _AUDIO_ERRORS as exc:
            raise AssemblyError(f"Dialogue assembly failed: {exc}") from exc

    def _mix_music(self, dialogue_path: Path, out: Path) -> Path | None:
        music_path = self.assets_dir / MUSIC_FILE
        if not music_path.exists():
            log.warning("audio.music_missing path=%s", music_path)
            return None
        try:
            dialogue = AudioSegment.from_file(str(dialogue_path))
            bed = AudioSegment.from_file(str(music_path)) + ratio_to_db(MUSIC_VOLUME)
            dialogue.overlay(bed, loop=True).export(str(out), format="mp3", bitrate=BITRATE)
        except _AUDIO_ERRORS as exc:
            log.warning("audio.music_mix_failed error=%s", exc)
            return None
        return out

    def _add_intro_outro(self, main_path: Path, out: Path) -> None:
        intro = self.assets_dir / INTRO_FILE
        outro = self.assets_dir / OUTRO_FILE
        has_intro, has_outro = intro.exists(), outro.exists()
        if has_intro or has_outro:
            try:
                track = AudioSegment.from_file(str(main_path))
                if has_intro:
                    track = AudioSegment.from_file(str(intro)) + track
                if has_outro:
                    track = track + AudioSegment.from_file(str(outro))
                track.export(str(out), format="mp3", bitrate=BITRATE)
                return
            except _AUDIO_ERRORS as exc:
                log.warning("audio.intro_outro_failed error=%s", exc)
        try:
            shutil.copyfile(main_path, out)
        except OSError as exc:
            raise AssemblyError(f"Could not write final audio: {exc}") from exc
