from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class Stage(str, Enum):
    SCRIPTING = "scripting"
    AUDIO = "audio"
    ASSEMBLY = "assembly"
    COMPLETE = "complete"


class Speaker(str, Enum):
    HOST_A = "HOST_A"
    HOST_B = "HOST_B"


class PodcastFormat(str, Enum):
    CONVERSATION = "conversation"
    INTERVIEW = "interview"
    SOLO_NARRATION = "solo_narration"
    STUDY_NOTES = "study_notes"


class EpisodeLength(str, Enum):
    FIVE = "5min"
    TEN = "10min"
    FIFTEEN = "15min"


class Tone(str, Enum):
    EDUCATIONAL = "educational"
    CASUAL = "casual"
    DEEP_DIVE = "deep_dive"
    MYSTICAL = "mystical"


class TtsProvider(str, Enum):
    DEEPINFRA = "deepinfra"
    INFERENCE = "inference"
    OPENAI = "openai"


class LlmProvider(str, Enum):
    OPENROUTER = "openrouter"
    INFERENCE = "inference"


# Approximate spoken word targets per episode length.
DURATION_WORDS: dict[EpisodeLength, int] = {
    EpisodeLength.FIVE: 750,
    EpisodeLength.TEN: 1500,
    EpisodeLength.FIFTEEN: 2250,
}


class VoiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider voice identifier, e.g. af_heart")
    name: str = Field(..., description="Display name used in prompts and transcripts")


class VoicePair(BaseModel):
    model_config = ConfigDict(frozen=True)

    host_a: VoiceConfig
    host_b: VoiceConfig | None = Field(default=None, description="Optional for solo narration")


VOICE_PRESETS: dict[str, VoicePair] = {
    "luna_and_sol": VoicePair(
        host_a=VoiceConfig(id="af_heart", name="Luna"),
        host_b=VoiceConfig(id="af_bella", name="Sol"),
    ),
    "mixed_gender": VoicePair(
        host_a=VoiceConfig(id="af_heart", name="Luna"),
        host_b=VoiceConfig(id="am_michael", name="Sol"),
    ),
    "british_pair": VoicePair(
        host_a=VoiceConfig(id="bf_emma", name="Luna"),
        host_b=VoiceConfig(id="bm_george", name="Sol"),
    ),
    "solo_warm": VoicePair(host_a=VoiceConfig(id="af_heart", name="Narrator")),
    "solo_british": VoicePair(host_a=VoiceConfig(id="bf_emma", name="Narrator")),
}


class PodcastConfig(BaseModel):
    """Caller-owned generation request. Read-only to the pipeline."""

    model_config = ConfigDict(frozen=True)

    content: str
    title: str
    format: PodcastFormat = PodcastFormat.CONVERSATION
    duration: EpisodeLength = EpisodeLength.FIVE
    tone: Tone = Tone.EDUCATIONAL
    voices: VoicePair = Field(default_factory=lambda: VOICE_PRESETS["luna_and_sol"])
    tts_provider: TtsProvider = TtsProvider.DEEPINFRA
    llm_provider: LlmProvider = LlmProvider.OPENROUTER
    include_music: bool = False
    custom_instructions: str | None = None
    source: str | None = Field(default=None, description="Content source tag, e.g. text or url")

    def host_name(self, speaker: Speaker) -> str:
        if speaker == Speaker.HOST_A:
            return self.voices.host_a.name
        return self.voices.host_b.name if self.voices.host_b else "Host B"

    def voice_for(self, speaker: Speaker) -> str:
        if speaker == Speaker.HOST_B and self.voices.host_b:
            return self.voices.host_b.id
        return self.voices.host_a.id


class ScriptLine(BaseModel):
    speaker: Speaker
    text: str


class ProgressEvent(BaseModel):
    stage: Stage
    message: str
    percent: int = Field(..., ge=0, le=100)


class PodcastResult(BaseModel):
    audio_path: str
    slug: str
    asset_url: str | None = None
    transcript: list[ScriptLine] = Field(default_factory=list)
    duration_seconds: float = 0.0
    word_count: int = 0
    cost_usd: float = 0.0


class Job(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    stage: Stage | None = None
    message: str = "Queued"
    created_at: float = Field(default_factory=time.time, description="Epoch seconds")
    config: PodcastConfig | None = None
    result: PodcastResult | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in {JobStatus.COMPLETE, JobStatus.ERROR}
