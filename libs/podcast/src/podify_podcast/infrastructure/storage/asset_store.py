from __future__ import annotations

from pathlib import Path

import httpx

from podify_contracts.errors import RegistrationError
from podify_podcast.application.ports import AssetStore
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


class HttpAssetStore(AssetStore):
    """
    Publishes episode audio to an object store that speaks plain HTTP.

    - PUT    {base_url}/episodes/{name}   body = audio bytes
    - DELETE {asset_url}
    The PUT response may carry ``{"url": ...}``; otherwise the object URL is used.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout_s: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def upload(self, *, name: str, path: Path) -> str:
        url = f"{self.base_url}/episodes/{name}"
        headers = {**self._headers(), "Content-Type": "audio/mpeg"}
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self.transport) as client:
                r = client.put(url, content=Path(path).read_bytes(), headers=headers)
                r.raise_for_status()
        except (httpx.HTTPError, OSError) as exc:
            raise RegistrationError(f"Asset upload failed for {name}: {exc}") from exc
        try:
            body = r.json()
        except ValueError:
            body = None
        published = body.get("url") if isinstance(body, dict) else None
        log.info("assets.uploaded name=%s", name)
        return published or url

    def delete(self, url: str) -> None:
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self.transport) as client:
                r = client.delete(url, headers=self._headers())
                r.raise_for_status()
        except httpx.HTTPError as exc:
            raise RegistrationError(f"Asset delete failed for {url}: {exc}") from exc
