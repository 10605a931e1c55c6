from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from podify_contracts.errors import ConfigurationError, ProviderError
from podify_contracts.podcast_job import LlmProvider, PodcastConfig, TtsProvider
from podify_podcast.infrastructure.llm.inference import InferenceTextGenerator
from podify_podcast.infrastructure.llm.openrouter import OpenRouterTextGenerator
from podify_podcast.infrastructure.providers import SettingsProviderRegistry
from podify_podcast.infrastructure.script.script_writer import DialogueScriptWriter
from podify_podcast.infrastructure.settings import Settings
from podify_podcast.infrastructure.tts.deepinfra_adapter import DeepInfraSynthesizer
from podify_podcast.infrastructure.tts.inference_adapter import InferenceSynthesizer
from podify_podcast.infrastructure.tts.openai_adapter import OpenAISynthesizer

KEY_VARS = ("OPENROUTER_API_KEY", "INFERENCE_API_KEY", "DEEPINFRA_API_KEY", "OPENAI_API_KEY")


@pytest.fixture(autouse=True)
def no_env_keys(monkeypatch):
    for name in KEY_VARS:
        monkeypatch.delenv(name, raising=False)


def _mock(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def test_deepinfra_returns_raw_audio_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"RIFFwav", headers={"content-type": "audio/wav"})

    synth = DeepInfraSynthesizer(api_key="k", transport=_mock(handler))
    speech = asyncio.run(synth.synthesize("hello there", "af_heart"))

    assert speech.audio == b"RIFFwav"
    assert speech.duration_ms > 0
    assert seen["auth"] == "Bearer k"
    assert seen["body"] == {"text": "hello there", "voice": "af_heart", "output_format": "wav"}


@pytest.mark.parametrize(
    "body",
    [
        {"audio": base64.b64encode(b"RIFFinline").decode()},
        {"audio": "data:audio/wav;base64," + base64.b64encode(b"RIFFinline").decode()},
        {"output": {"audio": base64.b64encode(b"RIFFinline").decode()}},
    ],
)
def test_deepinfra_decodes_inline_base64(body):
    synth = DeepInfraSynthesizer(api_key="k", transport=_mock(lambda request: httpx.Response(200, json=body)))
    assert asyncio.run(synth.synthesize("hi", "af_heart")).audio == b"RIFFinline"


def test_deepinfra_follows_output_url():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"output": {"url": "https://files.test/a.wav"}})
        assert str(request.url) == "https://files.test/a.wav"
        return httpx.Response(200, content=b"RIFFfetched")

    synth = DeepInfraSynthesizer(api_key="k", transport=_mock(handler))
    assert asyncio.run(synth.synthesize("hi", "af_heart")).audio == b"RIFFfetched"


def test_deepinfra_unknown_shape_and_http_errors():
    odd = DeepInfraSynthesizer(api_key="k", transport=_mock(lambda request: httpx.Response(200, json={"foo": 1})))
    with pytest.raises(ProviderError, match="Unexpected DeepInfra response"):
        asyncio.run(odd.synthesize("hi", "af_heart"))

    listing = DeepInfraSynthesizer(api_key="k", transport=_mock(lambda request: httpx.Response(200, json=[1, 2])))
    with pytest.raises(ProviderError, match="Unexpected DeepInfra response"):
        asyncio.run(listing.synthesize("hi", "af_heart"))

    failing = DeepInfraSynthesizer(api_key="k", transport=_mock(lambda request: httpx.Response(429, text="slow down")))
    with pytest.raises(ProviderError, match="DeepInfra TTS error 429: slow down"):
        asyncio.run(failing.synthesize("hi", "af_heart"))


def test_inference_synthesizer_fetches_audio_url():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            assert body == {"app": "infsh/kokoro-tts", "input": {"text": "hi", "voice": "bf_emma"}}
            return httpx.Response(200, json={"output": {"audio_url": "https://files.test/b.mp3"}})
        return httpx.Response(200, content=b"ID3fetched")

    synth = InferenceSynthesizer(api_key="k", transport=_mock(handler))
    assert asyncio.run(synth.synthesize("hi", "bf_emma")).audio == b"ID3fetched"


def test_inference_synthesizer_without_url_is_provider_error():
    synth = InferenceSynthesizer(api_key="k", transport=_mock(lambda request: httpx.Response(200, json={"output": {}})))
    with pytest.raises(ProviderError, match="No audio URL"):
        asyncio.run(synth.synthesize("hi", "bf_emma"))


def test_openai_maps_kokoro_voices():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=b"ID3mp3")

    synth = OpenAISynthesizer(api_key="k", transport=_mock(handler))
    asyncio.run(synth.synthesize("hi", "bm_george"))
    asyncio.run(synth.synthesize("hi", "zz_unknown"))

    assert [b["voice"] for b in bodies] == ["alloy", "nova"]
    assert bodies[0]["model"] == "tts-1"
    assert bodies[0]["response_format"] == "mp3"


def test_network_failure_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    synth = OpenAISynthesizer(api_key="k", transport=_mock(handler))
    with pytest.raises(ProviderError, match="OpenAI TTS request failed"):
        asyncio.run(synth.synthesize("hi", "af_heart"))


@pytest.mark.parametrize("cls", [DeepInfraSynthesizer, InferenceSynthesizer, OpenAISynthesizer])
def test_synthesizers_require_a_key(cls):
    with pytest.raises(ConfigurationError):
        cls()


def test_openrouter_generate_sends_chat_messages():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": "  [] \n"}}]})

    generator = OpenRouterTextGenerator(api_key="k", model="test/model", transport=_mock(handler))
    assert asyncio.run(generator.generate(system="sys", prompt="user")) == "[]"
    assert seen["model"] == "test/model"
    assert seen["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "user"}]


def test_openrouter_errors():
    empty = OpenRouterTextGenerator(api_key="k", transport=_mock(lambda request: httpx.Response(200, json={"choices": []})))
    with pytest.raises(ProviderError, match="No choices"):
        asyncio.run(empty.generate(system="s", prompt="p"))

    down = OpenRouterTextGenerator(api_key="k", transport=_mock(lambda request: httpx.Response(500, text="boom")))
    with pytest.raises(ProviderError, match="OpenRouter error 500: boom"):
        asyncio.run(down.generate(system="s", prompt="p"))

    with pytest.raises(ConfigurationError):
        OpenRouterTextGenerator()


@pytest.mark.parametrize(
    "body",
    [
        {"choices": [{"message": None}]},
        {"choices": ["not-a-choice"]},
        {"choices": {"message": "nope"}},
        [{"message": {"content": "hi"}}],
    ],
)
def test_openrouter_malformed_body_is_provider_error(body):
    generator = OpenRouterTextGenerator(api_key="k", transport=_mock(lambda request: httpx.Response(200, json=body)))
    with pytest.raises(ProviderError):
        asyncio.run(generator.generate(system="s", prompt="p"))


def test_inference_text_generator_reads_text_output():
    generator = InferenceTextGenerator(
        api_key="k", transport=_mock(lambda request: httpx.Response(200, json={"output": {"text": " hello "}}))
    )
    assert asyncio.run(generator.generate(system="s", prompt="p")) == "hello"

    blank = InferenceTextGenerator(api_key="k", transport=_mock(lambda request: httpx.Response(200, json={"output": ""})))
    with pytest.raises(ProviderError):
        asyncio.run(blank.generate(system="s", prompt="p"))

    listing = InferenceTextGenerator(api_key="k", transport=_mock(lambda request: httpx.Response(200, json=["hello"])))
    with pytest.raises(ProviderError, match="expected an object, got list"):
        asyncio.run(listing.generate(system="s", prompt="p"))


def test_registry_resolves_adapters_from_settings():
    settings = Settings(openrouter_api_key="or", inference_api_key="inf", deepinfra_api_key="di", openai_api_key="oa")
    providers = SettingsProviderRegistry(settings)
    base = {"content": "x" * 60, "title": "T"}

    writer = providers.script_writer(PodcastConfig(**base))
    assert isinstance(writer, DialogueScriptWriter)
    assert isinstance(writer.generator, OpenRouterTextGenerator)
    assert isinstance(providers.text_generator(LlmProvider.INFERENCE), InferenceTextGenerator)

    assert isinstance(providers.synthesizer(PodcastConfig(**base)), DeepInfraSynthesizer)
    assert isinstance(
        providers.synthesizer(PodcastConfig(**base, tts_provider=TtsProvider.INFERENCE)), InferenceSynthesizer
    )
    assert isinstance(providers.synthesizer(PodcastConfig(**base, tts_provider=TtsProvider.OPENAI)), OpenAISynthesizer)


def test_registry_missing_key_is_configuration_error():
    providers = SettingsProviderRegistry(Settings())
    with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
        providers.script_writer(PodcastConfig(content="x" * 60, title="T"))
