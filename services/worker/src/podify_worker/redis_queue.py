from __future__ import annotations

import json
import time
from typing import Any

import redis


def _score_job(priority: float | None) -> float:
    # zpopmax pops the highest score; negated enqueue time gives FIFO order.
    if priority is not None:
        return float(priority)
    return -time.time()


def enqueue(
    client: redis.Redis,
    key: str,
    *,
    job_id: str,
    priority: float | None = None,
    meta: dict[str, Any] | None = None,
) -> float:
    score = _score_job(priority)
    payload = json.dumps({"job_id": job_id, "meta": meta or {}})
    client.zadd(key, {payload: score})
    return score


def dequeue(client: redis.Redis, key: str) -> dict[str, Any] | None:
    items = client.zpopmax(key, count=1)
    if not items:
        return None
    raw, score = items[0]
    payload = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        data = {"job_id": payload}
    data["score"] = float(score)
    return data


def queue_depth(client: redis.Redis, key: str) -> int:
    return int(client.zcard(key))
