from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from rich.logging import RichHandler

_job_id: ContextVar[str | None] = ContextVar("job_id", default=None)

class JobIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = _job_id.get() or "-"
        return True

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple formatter
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "job_id": getattr(record, "job_id", None),
            "name": record.name,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)

def setup_logging(level: int | str = logging.INFO, *, fmt: str = "plain") -> None:
    if fmt == "json":
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        format_str = "%(message)s"
    else:
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        format_str = "[%(job_id)s] %(message)s"

    # Filter on the handler so records from every logger carry a job id.
    handler.addFilter(JobIdFilter())
    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    token = _job_id.set(job_id)
    try:
        yield
    finally:
        _job_id.reset(token)

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
