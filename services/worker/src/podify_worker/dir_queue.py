from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any


def enqueue(queue_dir: Path, job_id: str, meta: dict[str, Any] | None = None) -> str:
    queue_dir.mkdir(parents=True, exist_ok=True)
    payload = {"job_id": job_id, "meta": meta or {}}
    # Nanosecond prefix keeps FIFO order stable when mtimes tie.
    path = queue_dir / f"{time.time_ns()}_{job_id}.json"
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(payload), encoding="utf-8")
    os.replace(tmp, path)
    return str(path)


def dequeue(queue_dir: Path) -> dict[str, Any] | None:
    if not queue_dir.exists():
        return None
    for path in sorted(queue_dir.glob("*.json")):
        try:
            raw = path.read_text(encoding="utf-8")
            path.unlink()
        except FileNotFoundError:
            # Claimed by another worker between glob and read.
            continue
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return {"job_id": path.stem.split("_", 1)[-1]}
    return None


def queue_depth(queue_dir: Path) -> int:
    if not queue_dir.exists():
        return 0
    return len(list(queue_dir.glob("*.json")))
