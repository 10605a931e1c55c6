from __future__ import annotations

import os
from pathlib import Path

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from podify_contracts.errors import RegistrationError
from podify_contracts.feed import FeedManifest
from podify_podcast.application.ports import ManifestStore
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)

MANIFEST_FILE = "feed.json"


class FileManifestStore(ManifestStore):
    """``feed.json`` in the output directory, replaced atomically on write."""

    def read(self, output_dir: Path) -> FeedManifest:
        path = Path(output_dir) / MANIFEST_FILE
        try:
            return FeedManifest.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return FeedManifest()
        except (OSError, ValidationError) as exc:
            log.warning("manifest.unreadable path=%s error=%s", path, exc)
            return FeedManifest()

    def write(self, output_dir: Path, manifest: FeedManifest) -> None:
        path = Path(output_dir) / MANIFEST_FILE
        tmp = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(manifest.model_dump_json(indent=2) + "\n", encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise RegistrationError(f"Manifest write failed: {exc}") from exc


class RedisManifestStore(ManifestStore):
    """Whole manifest stored under one key; ``output_dir`` is ignored."""

    def __init__(self, client: Redis, key: str = "podify:feed") -> None:
        self.client = client
        self.key = key

    def read(self, output_dir: Path) -> FeedManifest:
        try:
            raw = self.client.get(self.key)
        except RedisError as exc:
            log.warning("manifest.redis_read_failed key=%s error=%s", self.key, exc)
            return FeedManifest()
        if not raw:
            return FeedManifest()
        try:
            return FeedManifest.model_validate_json(raw)
        except ValidationError as exc:
            log.warning("manifest.unreadable key=%s error=%s", self.key, exc)
            return FeedManifest()

    def write(self, output_dir: Path, manifest: FeedManifest) -> None:
        try:
            self.client.set(self.key, manifest.model_dump_json())
        except RedisError as exc:
            raise RegistrationError(f"Manifest write failed: {exc}") from exc
