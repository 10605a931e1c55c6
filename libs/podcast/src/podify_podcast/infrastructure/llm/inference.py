from __future__ import annotations

import os

import httpx

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_podcast.application.ports import TextGenerator
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


class InferenceTextGenerator(TextGenerator):
    """inference.sh app runner used as an alternative LLM backend."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        app: str = "openrouter/claude-sonnet-45",
        timeout_s: float = 120.0,
        base_url: str = "https://api.inference.sh/v1/run",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("INFERENCE_API_KEY")
        if not self.api_key:
            raise ConfigurationError("InferenceTextGenerator requires INFERENCE_API_KEY")
        self.app = app
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.transport = transport

    async def generate(self, *, system: str, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"app": self.app, "input": {"system": system, "prompt": prompt}}
        log.info("inference.generate app=%s", self.app)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(self.base_url, json=payload, headers=headers)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"inference.sh error {exc.response.status_code}: {exc.response.text}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"inference.sh request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise ProviderError(f"Malformed inference.sh response: expected an object, got {type(data).__name__}")
        output = data.get("output")
        if isinstance(output, dict):
            output = output.get("text")
        if not isinstance(output, str) or not output.strip():
            raise ProviderError("No text in inference.sh response")
        return output.strip()
