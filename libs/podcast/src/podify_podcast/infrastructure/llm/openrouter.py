from __future__ import annotations

import os

import httpx

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_podcast.application.ports import TextGenerator
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


class OpenRouterTextGenerator(TextGenerator):
    """Async client for OpenRouter chat completions."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = "anthropic/claude-sonnet-4",
        timeout_s: float = 120.0,
        max_tokens: int = 4096,
        temperature: float = 0.8,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ConfigurationError("OpenRouterTextGenerator requires OPENROUTER_API_KEY")
        self.model = model
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.base_url = base_url
        self.transport = transport

    async def generate(self, *, system: str, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Podify Podcast Generator",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        log.info("openrouter.generate model=%s", self.model)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(self.base_url, json=payload, headers=headers)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"OpenRouter error {exc.response.status_code}: {exc.response.text}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"OpenRouter request failed: {exc}") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices, list):
            raise ProviderError("No choices returned from OpenRouter")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ProviderError("Malformed OpenRouter response: choice has no message")
        return str(message.get("content") or "").strip()
