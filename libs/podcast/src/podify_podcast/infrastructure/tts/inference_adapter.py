from __future__ import annotations

import os

import httpx

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_podcast.application.ports import SpeechSynthesizer
from podify_podcast.domain.models import SynthesizedSpeech, estimate_duration_ms
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


class InferenceSynthesizer(SpeechSynthesizer):
    """Kokoro via the inference.sh app runner; audio is fetched from the returned URL."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        app: str = "infsh/kokoro-tts",
        timeout_s: float = 120.0,
        base_url: str = "https://api.inference.sh/v1/run",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("INFERENCE_API_KEY")
        if not self.api_key:
            raise ConfigurationError("InferenceSynthesizer requires INFERENCE_API_KEY")
        self.app = app
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.transport = transport

    async def synthesize(self, text: str, voice: str) -> SynthesizedSpeech:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"app": self.app, "input": {"text": text, "voice": voice}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(self.base_url, json=payload, headers=headers)
                r.raise_for_status()
                output = r.json().get("output") or {}
                audio_url = output.get("audio_url") or output.get("url")
                if not audio_url:
                    raise ProviderError("No audio URL in inference.sh response")
                log.debug("inference.tts_fetch url=%s", audio_url)
                audio_r = await client.get(audio_url)
                audio_r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"inference.sh TTS error {exc.response.status_code}: {exc.response.text}") from exc
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise ProviderError(f"inference.sh TTS request failed: {exc}") from exc
        return SynthesizedSpeech(audio=audio_r.content, duration_ms=estimate_duration_ms(text))
