from __future__ import annotations

import re
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from podify_contracts.errors import PodifyError
from podify_contracts.feed import EpisodeMeta, FeedManifest
from podify_podcast.application.ports import AssetStore, ManifestStore
from podify_podcast.infrastructure.audio.probe import probe_duration_seconds
from podify_podcast.infrastructure.logging import get_logger
from podify_podcast.infrastructure.text.normalize import title_from_slug

log = get_logger(__name__)

_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})_")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def unique_slug(slug: str, taken: set[str]) -> str:
    if slug not in taken:
        return slug
    suffix = 2
    while f"{slug}-{suffix}" in taken:
        suffix += 1
    return f"{slug}-{suffix}"


def _parse_pub_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def sort_newest_first(episodes: list[EpisodeMeta]) -> list[EpisodeMeta]:
    return sorted(episodes, key=lambda e: _parse_pub_date(e.pub_date), reverse=True)


class EpisodeRegistry:
    """Newest-first list of published episodes, capped at ``max_episodes``.

    Slugs are unique within the manifest; a colliding slug gets ``-2``, ``-3``,
    ... appended. Entries pushed past the cap are dropped and their uploaded
    audio is deleted on a best-effort basis.
    """

    def __init__(
        self,
        *,
        manifest_store: ManifestStore,
        asset_store: AssetStore | None = None,
        max_episodes: int = 60,
        probe: Callable[[Path], float] = probe_duration_seconds,
    ) -> None:
        self.manifest_store = manifest_store
        self.asset_store = asset_store
        self.max_episodes = max(1, max_episodes)
        self.probe = probe
        # Serializes read-modify-write of the manifest within this process.
        self._lock = threading.Lock()

    def read(self, output_dir: Path) -> FeedManifest:
        return self.manifest_store.read(output_dir)

    def append(self, output_dir: Path, episode: EpisodeMeta) -> EpisodeMeta:
        with self._lock:
            return self._append(output_dir, episode)

    def _append(self, output_dir: Path, episode: EpisodeMeta) -> EpisodeMeta:
        manifest = self.manifest_store.read(output_dir)
        slug = unique_slug(episode.slug, {e.slug for e in manifest.episodes})
        stored = episode.model_copy(update={"slug": slug})
        manifest.episodes.insert(0, stored)

        evicted = manifest.episodes[self.max_episodes :]
        del manifest.episodes[self.max_episodes :]
        for old in evicted:
            log.info("registry.evicted slug=%s", old.slug)
            self._delete_asset(old)

        self.manifest_store.write(output_dir, manifest)
        log.info("registry.appended slug=%s episodes=%s", slug, len(manifest.episodes))
        return stored

    def rebuild_from_disk(self, output_dir: Path) -> FeedManifest:
        """Register every episode directory under ``output_dir`` not yet in the manifest."""
        with self._lock:
            return self._rebuild(Path(output_dir))

    def _rebuild(self, output_dir: Path) -> FeedManifest:
        manifest = self.manifest_store.read(output_dir)
        known = {e.slug for e in manifest.episodes}

        dirs = sorted(
            (p for p in output_dir.iterdir() if p.is_dir() and not p.name.startswith(".")),
            key=lambda p: p.name,
        )
        for episode_dir in dirs:
            mp3 = next((f for f in sorted(episode_dir.iterdir()) if f.name.endswith(".mp3")), None)
            if mp3 is None:
                continue
            slug = mp3.name[: -len(".mp3")]
            if slug in known:
                continue

            episode = self._meta_from_disk(episode_dir, mp3, slug)
            manifest.episodes.insert(0, episode)
            known.add(slug)
            log.info("registry.rebuild_added dir=%s slug=%s", episode_dir.name, slug)

        manifest.episodes = sort_newest_first(manifest.episodes)
        self.manifest_store.write(output_dir, manifest)
        log.info("registry.rebuilt episodes=%s", len(manifest.episodes))
        return manifest

    def _meta_from_disk(self, episode_dir: Path, mp3: Path, slug: str) -> EpisodeMeta:
        stat = mp3.stat()
        word_count = 0
        description = ""
        transcript_path = episode_dir / "transcript.txt"
        if transcript_path.is_file():
            transcript = transcript_path.read_text(encoding="utf-8")
            word_count = len(transcript.split())
            description = transcript[:200].replace("\n", " ").strip()
            if len(description) == 200:
                description += "..."

        match = _DATE_PREFIX.match(episode_dir.name)
        if match:
            pub = datetime.strptime(match.group(1), "%Y-%m-%d").replace(tzinfo=timezone.utc)
        else:
            pub = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        return EpisodeMeta(
            guid=str(uuid.uuid4()),
            slug=slug,
            dir_name=episode_dir.name,
            title=title_from_slug(slug),
            description=description,
            pub_date=pub.isoformat(),
            duration_seconds=self.probe(mp3),
            file_size_bytes=stat.st_size,
            audio_file_name=mp3.name,
            word_count=word_count,
            cost_usd=0.0,
            asset_url=self.upload_audio(name=f"{episode_dir.name}.mp3", path=mp3),
        )

    def upload_audio(self, *, name: str, path: Path) -> str | None:
        """Publish audio through the asset store, if one is configured. Failures are logged."""
        if self.asset_store is None:
            return None
        try:
            return self.asset_store.upload(name=name, path=path)
        except PodifyError as exc:
            log.error("registry.upload_failed name=%s error=%s", name, exc)
            return None

    def _delete_asset(self, episode: EpisodeMeta) -> None:
        if not episode.asset_url or self.asset_store is None:
            return
        try:
            self.asset_store.delete(episode.asset_url)
        except PodifyError as exc:
            log.warning("registry.asset_delete_failed slug=%s error=%s", episode.slug, exc)
