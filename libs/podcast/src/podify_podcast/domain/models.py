from __future__ import annotations

from dataclasses import dataclass

from podify_contracts.podcast_job import Speaker


@dataclass(frozen=True)
class SynthesizedSpeech:
    audio: bytes
    duration_ms: float


@dataclass(frozen=True)
class AudioClip:
    speaker: Speaker
    file_path: str
    duration_ms: float


@dataclass(frozen=True)
class AssemblyResult:
    path: str
    duration_seconds: float


def estimate_duration_ms(text: str) -> float:
    # ~1000 characters per spoken minute
    return len(text) / 1000 * 60 * 1000
