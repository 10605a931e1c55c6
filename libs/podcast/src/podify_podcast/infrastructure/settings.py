from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel


def load_env(env_path: Path | None = None) -> None:
    path = env_path or Path.cwd() / ".env"
    if path.exists():
        load_dotenv(path)


def env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


class Settings(BaseModel):
    """Process-wide configuration, read once at startup."""

    output_dir: Path = Path(".podify-output")
    audio_assets_dir: Path = Path("assets/audio")

    job_store: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "podify"
    max_concurrent_jobs: int = 3
    job_stale_after_s: float = 300.0
    job_ttl_s: int = 3600

    manifest_store: str = "file"
    max_episodes: int = 60
    asset_store_url: str | None = None
    asset_store_token: str | None = None

    tts_concurrency: int = 6

    queue_mode: str = "inline"
    queue_dir: Path = Path(".podify-output/queue")
    queue_redis_key: str = "podify:queue"
    queue_poll_interval_s: float = 2.0
    worker_concurrency: int = 3

    log_format: str = "plain"
    log_level: str = "INFO"
    metrics_enabled: bool = False
    metrics_port: int = 9000

    openrouter_api_key: str | None = None
    openrouter_model: str = "anthropic/claude-sonnet-4"
    inference_api_key: str | None = None
    deepinfra_api_key: str | None = None
    openai_api_key: str | None = None
    provider_timeout_s: float = 120.0

    @classmethod
    def from_env(cls) -> "Settings":
        output_dir = Path(os.getenv("OUTPUT_DIR", ".podify-output"))
        return cls(
            output_dir=output_dir,
            audio_assets_dir=Path(os.getenv("AUDIO_ASSETS_DIR", "assets/audio")),
            job_store=os.getenv("JOB_STORE", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", "podify"),
            max_concurrent_jobs=_env_int("MAX_CONCURRENT_JOBS", 3),
            job_stale_after_s=_env_float("JOB_STALE_AFTER_S", 300.0),
            job_ttl_s=_env_int("JOB_TTL_S", 3600),
            manifest_store=os.getenv("MANIFEST_STORE", "file").lower(),
            max_episodes=_env_int("MAX_EPISODES", 60),
            asset_store_url=os.getenv("ASSET_STORE_URL") or None,
            asset_store_token=os.getenv("ASSET_STORE_TOKEN") or None,
            tts_concurrency=_env_int("TTS_CONCURRENCY", 6),
            queue_mode=os.getenv("QUEUE_MODE", "inline").lower(),
            queue_dir=Path(os.getenv("QUEUE_DIR", str(output_dir / "queue"))),
            queue_redis_key=os.getenv("QUEUE_REDIS_KEY", "podify:queue"),
            queue_poll_interval_s=_env_float("QUEUE_POLL_INTERVAL_S", 2.0),
            worker_concurrency=_env_int("WORKER_CONCURRENCY", 3),
            log_format=os.getenv("LOG_FORMAT", "plain").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            metrics_enabled=env_bool("METRICS_ENABLED") or env_bool("PROMETHEUS_ENABLED"),
            metrics_port=_env_int("METRICS_PORT", 9000),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            openrouter_model=os.getenv("OPENROUTER_MODEL", "anthropic/claude-sonnet-4"),
            inference_api_key=os.getenv("INFERENCE_API_KEY") or None,
            deepinfra_api_key=os.getenv("DEEPINFRA_API_KEY") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            provider_timeout_s=_env_float("PROVIDER_TIMEOUT_S", 120.0),
        )
