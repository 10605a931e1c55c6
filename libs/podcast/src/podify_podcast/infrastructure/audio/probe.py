from __future__ import annotations

from pathlib import Path

from pydub.utils import mediainfo

from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


def probe_duration_seconds(path: str | Path) -> float:
    """Duration reported by ffprobe, or 0.0 when the file can't be probed."""
    try:
        info = mediainfo(str(path))
        return float(info.get("duration") or 0.0)
    except (OSError, ValueError) as exc:
        log.warning("audio.probe_failed path=%s error=%s", path, exc)
        return 0.0
