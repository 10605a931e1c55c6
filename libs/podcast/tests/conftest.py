from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest
import redis

from podify_contracts.errors import ConfigurationError, ProviderError, RegistrationError
from podify_contracts.feed import FeedManifest
from podify_contracts.podcast_job import PodcastConfig, ScriptLine, Speaker
from podify_podcast.application.registry import EpisodeRegistry
from podify_podcast.application.synthesis import SynthesisScheduler
from podify_podcast.application.use_cases import GeneratePodcastEpisode
from podify_podcast.domain.models import AssemblyResult, SynthesizedSpeech

CONTENT = "Moon phases follow a cycle of roughly twenty-nine and a half days. " * 3


class FakeScriptWriter:
    def __init__(self, lines: list[ScriptLine], *, description: str | None = "A short episode.", fail: bool = False):
        self.lines = lines
        self.description = description
        self.fail = fail
        self.calls = 0

    async def write_script(self, config, on_progress=None):
        self.calls += 1
        if on_progress:
            on_progress("Generating script...", 5)
        if self.fail:
            raise ProviderError("LLM failed")
        if on_progress:
            on_progress("Parsing script...", 25)
            on_progress(f"Script generated: {len(self.lines)} lines", 30)
        return list(self.lines)

    async def describe(self, *, title, transcript):
        if self.description is None:
            raise ProviderError("description unavailable")
        return self.description


class FakeSynthesizer:
    def __init__(self, *, fail_on: set[str] | None = None, delays: dict[str, float] | None = None, events=None):
        self.fail_on = fail_on or set()
        self.delays = delays or {}
        self.events = events if events is not None else []
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def synthesize(self, text: str, voice: str) -> SynthesizedSpeech:
        self.events.append("tts")
        self.calls.append((text, voice))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(text, 0))
            if text in self.fail_on:
                raise ProviderError(f"TTS failed for {text!r}")
            return SynthesizedSpeech(audio=b"ID3" + text.encode(), duration_ms=len(text) * 60.0)
        finally:
            self.in_flight -= 1


class FakeProviders:
    def __init__(self, writer, synthesizer, *, missing_key: bool = False):
        self.writer = writer
        self.synth = synthesizer
        self.missing_key = missing_key

    def script_writer(self, config):
        if self.missing_key:
            raise ConfigurationError("OpenRouterTextGenerator requires OPENROUTER_API_KEY")
        return self.writer

    def synthesizer(self, config):
        return self.synth


class FakeAssembler:
    def __init__(self, duration_seconds: float = 42.0):
        self.duration_seconds = duration_seconds
        self.clips = None

    def assemble(self, *, clips, config, work_dir, out_path, on_progress=None):
        self.clips = list(clips)
        if on_progress:
            on_progress("Assembling podcast...", 82)
            on_progress("Assembly complete", 95)
        Path(out_path).write_bytes(b"ID3" + b"\x00" * 128)
        return AssemblyResult(path=out_path, duration_seconds=self.duration_seconds)


class MemoryManifestStore:
    def __init__(self, manifest: FeedManifest | None = None, *, fail_write: bool = False):
        self.manifest = manifest or FeedManifest()
        self.fail_write = fail_write
        self.writes = 0

    def read(self, output_dir):
        return self.manifest.model_copy(deep=True)

    def write(self, output_dir, manifest):
        if self.fail_write:
            raise RegistrationError("manifest store offline")
        self.writes += 1
        self.manifest = manifest.model_copy(deep=True)


class FakeAssetStore:
    def __init__(self, *, fail_upload: bool = False, fail_delete: bool = False):
        self.fail_upload = fail_upload
        self.fail_delete = fail_delete
        self.uploaded: list[str] = []
        self.deleted: list[str] = []

    def upload(self, *, name, path):
        if self.fail_upload:
            raise RegistrationError("upload refused")
        self.uploaded.append(name)
        return f"https://assets.test/episodes/{name}"

    def delete(self, url):
        if self.fail_delete:
            raise RegistrationError("delete refused")
        self.deleted.append(url)


class FakeRedis:
    """Just enough of redis.Redis for the job and manifest stores."""

    def __init__(self):
        self.kv: dict[str, bytes] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.kv.get(key)

    def set(self, key, value, ex=None):
        self._check()
        self.kv[key] = value.encode() if isinstance(value, str) else value
        return True

    def mget(self, keys):
        self._check()
        return [self.kv.get(k) for k in keys]

    def zadd(self, key, mapping):
        self._check()
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zremrangebyscore(self, key, lo, hi):
        self._check()
        zset = self.zsets.get(key, {})
        hi_val = float(hi)
        doomed = [m for m, s in zset.items() if s <= hi_val]
        for m in doomed:
            del zset[m]
        return len(doomed)

    def zrangebyscore(self, key, lo, hi):
        self._check()
        exclusive = isinstance(lo, str) and lo.startswith("(")
        lo_val = float(lo[1:] if exclusive else lo)
        hi_val = float(hi)
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [
            m.encode()
            for m, s in items
            if (s > lo_val if exclusive else s >= lo_val) and s <= hi_val
        ]

    def pipeline(self):
        self._check()
        store = self

        class _Pipe:
            def set(self, key, value, ex=None):
                store.set(key, value, ex=ex)
                return self

            def zadd(self, key, mapping):
                store.zadd(key, mapping)
                return self

            def execute(self):
                return []

        return _Pipe()


@pytest.fixture
def config() -> PodcastConfig:
    return PodcastConfig(content=CONTENT, title="Moon Phases 101")


@pytest.fixture
def two_line_script() -> list[ScriptLine]:
    return [
        ScriptLine(speaker=Speaker.HOST_A, text="Hello there listeners"),
        ScriptLine(speaker=Speaker.HOST_B, text="Hi Luna, welcome"),
    ]


@pytest.fixture
def make_pipeline():
    def _make(
        *,
        writer,
        synthesizer,
        assembler=None,
        manifest_store=None,
        asset_store=None,
        missing_key=False,
        concurrency=6,
    ):
        registry = EpisodeRegistry(
            manifest_store=manifest_store or MemoryManifestStore(),
            asset_store=asset_store,
            probe=lambda path: 0.0,
        )
        pipeline = GeneratePodcastEpisode(
            providers=FakeProviders(writer, synthesizer, missing_key=missing_key),
            scheduler=SynthesisScheduler(concurrency=concurrency),
            assembler=assembler or FakeAssembler(),
            registry=registry,
        )
        return pipeline

    return _make


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        ScriptWriter=FakeScriptWriter,
        Synthesizer=FakeSynthesizer,
        Assembler=FakeAssembler,
        ManifestStore=MemoryManifestStore,
        AssetStore=FakeAssetStore,
        Redis=FakeRedis,
    )
