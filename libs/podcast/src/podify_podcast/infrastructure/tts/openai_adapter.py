from __future__ import annotations

import os

import httpx

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_podcast.application.ports import SpeechSynthesizer
from podify_podcast.domain.models import SynthesizedSpeech, estimate_duration_ms
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)

# Kokoro voice ids mapped onto the closest OpenAI voice.
VOICE_MAP: dict[str, str] = {
    "af_heart": "nova",
    "af_sarah": "shimmer",
    "am_michael": "echo",
    "am_adam": "onyx",
    "bf_emma": "fable",
    "bm_george": "alloy",
}
DEFAULT_VOICE = "nova"


class OpenAISynthesizer(SpeechSynthesizer):
    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = "tts-1",
        timeout_s: float = 120.0,
        base_url: str = "https://api.openai.com/v1/audio/speech",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ConfigurationError("OpenAISynthesizer requires OPENAI_API_KEY")
        self.model = model
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.transport = transport

    async def synthesize(self, text: str, voice: str) -> SynthesizedSpeech:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "voice": VOICE_MAP.get(voice, DEFAULT_VOICE),
            "input": text,
            "response_format": "mp3",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(self.base_url, json=payload, headers=headers)
                r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"OpenAI TTS error {exc.response.status_code}: {exc.response.text}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"OpenAI TTS request failed: {exc}") from exc
        return SynthesizedSpeech(audio=r.content, duration_ms=estimate_duration_ms(text))
