from __future__ import annotations

import json
import os
import shutil
import time
from datetime import date
from pathlib import Path
from typing import Any

from podify_contracts.errors import CleanupError
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)

WORK_DIR_NAME = ".work"


class EpisodeWorkspace:
    """On-disk layout of one episode: ``<output>/<YYYY-MM-DD>_<slug>/`` with a scratch ``.work/``."""

    def __init__(self, output_dir: str | Path, slug: str, *, today: date | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.slug = slug
        self.dir_name = f"{(today or date.today()).isoformat()}_{slug}"
        self.episode_dir = self.output_dir / self.dir_name
        self.work_dir = self.episode_dir / WORK_DIR_NAME
        self.write_retries = int(os.getenv("ARTIFACT_WRITE_RETRIES", "3"))
        self.write_backoff_s = float(os.getenv("ARTIFACT_WRITE_BACKOFF_S", "0.2"))

    @property
    def clips_dir(self) -> Path:
        return self.work_dir / "clips"

    @property
    def audio_path(self) -> Path:
        return self.episode_dir / f"{self.slug}.mp3"

    def create(self) -> None:
        self.clips_dir.mkdir(parents=True, exist_ok=True)

    def write_text(self, name: str, content: str) -> Path:
        path = self.episode_dir / name
        self._write_bytes_with_retry(path, content.encode("utf-8"))
        return path

    def write_json(self, name: str, payload: Any) -> Path:
        return self.write_text(name, json.dumps(payload, indent=2, ensure_ascii=False))

    def cleanup(self) -> None:
        if not self.work_dir.exists():
            return
        try:
            shutil.rmtree(self.work_dir)
        except OSError as exc:
            raise CleanupError(f"Could not remove {self.work_dir}: {exc}") from exc

    def _write_bytes_with_retry(self, path: Path, content: bytes) -> None:
        last_exc: OSError | None = None
        for attempt in range(max(1, self.write_retries)):
            try:
                path.write_bytes(content)
                return
            except OSError as exc:
                last_exc = exc
                log.warning("workspace.write_retry path=%s attempt=%s error=%s", path, attempt + 1, exc)
                time.sleep(self.write_backoff_s * (2**attempt))
        if last_exc:
            raise last_exc
