from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, List, Protocol, Union

from podify_contracts.feed import FeedManifest
from podify_contracts.podcast_job import Job, PodcastConfig, ProgressEvent, ScriptLine
from podify_podcast.domain.models import AssemblyResult, AudioClip, SynthesizedSpeech

# Stage-level callback supplied by callers of the orchestrator; may be sync or async.
OnProgress = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

# Intra-stage callback handed to collaborators: (message, overall percent).
StepProgress = Callable[[str, int], None]


class TextGenerator(Protocol):
    async def generate(self, *, system: str, prompt: str) -> str: ...


class ScriptWriter(Protocol):
    async def write_script(self, config: PodcastConfig, on_progress: StepProgress | None = None) -> List[ScriptLine]: ...

    async def describe(self, *, title: str, transcript: List[ScriptLine]) -> str: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice: str) -> SynthesizedSpeech: ...


class ProviderRegistry(Protocol):
    def script_writer(self, config: PodcastConfig) -> ScriptWriter: ...

    def synthesizer(self, config: PodcastConfig) -> SpeechSynthesizer: ...


class AudioAssembler(Protocol):
    def assemble(
        self,
        *,
        clips: List[AudioClip],
        config: PodcastConfig,
        work_dir: str,
        out_path: str,
        on_progress: StepProgress | None = None,
    ) -> AssemblyResult: ...


class JobStore(Protocol):
    def create(self) -> Job: ...

    def get(self, job_id: str) -> Job | None: ...

    def update(self, job_id: str, **fields: Any) -> None: ...

    def active_count(self) -> int: ...

    def is_at_capacity(self) -> bool: ...

    def forget(self, job_id: str) -> None: ...


class ManifestStore(Protocol):
    def read(self, output_dir: Path) -> FeedManifest: ...

    def write(self, output_dir: Path, manifest: FeedManifest) -> None: ...


class AssetStore(Protocol):
    def upload(self, *, name: str, path: Path) -> str:
        """Upload a local audio file and return its public URL."""

    def delete(self, url: str) -> None: ...
