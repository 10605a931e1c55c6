from __future__ import annotations

import redis

from podify_contracts.errors import ConfigurationError
from podify_podcast.application.ports import AssetStore, ManifestStore
from podify_podcast.application.registry import EpisodeRegistry
from podify_podcast.application.synthesis import SynthesisScheduler
from podify_podcast.application.use_cases import GeneratePodcastEpisode
from podify_podcast.infrastructure.audio.pydub_assembler import PydubAudioAssembler
from podify_podcast.infrastructure.jobs.job_store import InMemoryJobStore, build_job_store
from podify_podcast.infrastructure.providers import SettingsProviderRegistry
from podify_podcast.infrastructure.settings import Settings
from podify_podcast.infrastructure.storage.asset_store import HttpAssetStore
from podify_podcast.infrastructure.storage.manifest_store import FileManifestStore, RedisManifestStore

QUEUE_MODES = {"inline", "redis", "dir"}


class Runtime:
    """Process-wide collaborators, built once at startup and passed by reference."""

    def __init__(self, settings: Settings, *, client: redis.Redis | None = None) -> None:
        check_settings(settings)
        self.settings = settings
        self._client = client
        self.job_store: InMemoryJobStore = build_job_store(settings, client=self._redis_if_needed())
        self.registry = build_registry(settings, client=self._redis_if_needed())
        self.pipeline = build_pipeline(settings, registry=self.registry)

    @property
    def redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.settings.redis_url)
        return self._client

    def _redis_if_needed(self) -> redis.Redis | None:
        s = self.settings
        if "redis" in {s.job_store, s.manifest_store, s.queue_mode}:
            return self.redis
        return None


def check_settings(settings: Settings) -> None:
    if settings.queue_mode not in QUEUE_MODES:
        raise ConfigurationError(f"Unknown QUEUE_MODE={settings.queue_mode!r}")
    if settings.queue_mode != "inline" and settings.job_store != "redis":
        # A separate worker process can only see jobs through the shared store.
        raise ConfigurationError(f"QUEUE_MODE={settings.queue_mode} requires JOB_STORE=redis")


def build_manifest_store(settings: Settings, *, client: redis.Redis | None = None) -> ManifestStore:
    if settings.manifest_store == "redis":
        return RedisManifestStore(
            client or redis.Redis.from_url(settings.redis_url), key=f"{settings.redis_key_prefix}:feed"
        )
    return FileManifestStore()


def build_asset_store(settings: Settings) -> AssetStore | None:
    if not settings.asset_store_url:
        return None
    return HttpAssetStore(
        base_url=settings.asset_store_url,
        token=settings.asset_store_token,
        timeout_s=settings.provider_timeout_s,
    )


def build_registry(settings: Settings, *, client: redis.Redis | None = None) -> EpisodeRegistry:
    return EpisodeRegistry(
        manifest_store=build_manifest_store(settings, client=client),
        asset_store=build_asset_store(settings),
        max_episodes=settings.max_episodes,
    )


def build_pipeline(settings: Settings, *, registry: EpisodeRegistry | None = None) -> GeneratePodcastEpisode:
    return GeneratePodcastEpisode(
        providers=SettingsProviderRegistry(settings),
        scheduler=SynthesisScheduler(concurrency=settings.tts_concurrency),
        assembler=PydubAudioAssembler(assets_dir=settings.audio_assets_dir),
        registry=registry or build_registry(settings),
    )
