from __future__ import annotations

import base64
import os

import httpx

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_podcast.application.ports import SpeechSynthesizer
from podify_podcast.domain.models import SynthesizedSpeech, estimate_duration_ms
from podify_podcast.infrastructure.logging import get_logger

log = get_logger(__name__)


def _decode_b64(value: str) -> bytes:
    # Accept bare base64 as well as data URIs ("data:audio/wav;base64,....").
    if "," in value:
        value = value.split(",", 1)[1]
    return base64.b64decode(value)


class DeepInfraSynthesizer(SpeechSynthesizer):
    """
    Kokoro-82M hosted on DeepInfra.

    The endpoint answers either with raw audio bytes or with JSON carrying the
    audio inline (``audio`` / ``output.audio``) or by reference (``output.url``).
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        timeout_s: float = 120.0,
        base_url: str = "https://api.deepinfra.com/v1/inference/hexgrad/Kokoro-82M",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("DEEPINFRA_API_KEY")
        if not self.api_key:
            raise ConfigurationError("DeepInfraSynthesizer requires DEEPINFRA_API_KEY")
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.transport = transport

    async def synthesize(self, text: str, voice: str) -> SynthesizedSpeech:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"text": text, "voice": voice, "output_format": "wav"}
        log.debug("deepinfra.tts voice=%s chars=%s", voice, len(text))
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(self.base_url, json=payload, headers=headers)
                r.raise_for_status()
                audio = await self._extract_audio(client, r)
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"DeepInfra TTS error {exc.response.status_code}: {exc.response.text}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"DeepInfra TTS request failed: {exc}") from exc
        return SynthesizedSpeech(audio=audio, duration_ms=estimate_duration_ms(text))

    async def _extract_audio(self, client: httpx.AsyncClient, r: httpx.Response) -> bytes:
        if "audio/" in r.headers.get("content-type", ""):
            return r.content

        data = r.json()
        if not isinstance(data, dict):
            raise ProviderError("Unexpected DeepInfra response format")
        output =data.get("output") if isinstance(data.get("output"), dict) else {}
        if data.get("audio"):
            return _decode_b64(data["audio"])
        if output.get("audio"):
            return _decode_b64(output["audio"])
        if output.get("url"):
            audio_r = await client.get(output["url"])
            audio_r.raise_for_status()
            return audio_r.content
        raise ProviderError("Unexpected DeepInfra response format")
