from __future__ import annotations

from podify_contracts.errors import ConfigurationError
from podify_contracts.podcast_job import LlmProvider, PodcastConfig, TtsProvider
from podify_podcast.application.ports import ProviderRegistry, ScriptWriter, SpeechSynthesizer, TextGenerator
from podify_podcast.infrastructure.llm.inference import InferenceTextGenerator
from podify_podcast.infrastructure.llm.openrouter import OpenRouterTextGenerator
from podify_podcast.infrastructure.script.script_writer import DialogueScriptWriter
from podify_podcast.infrastructure.settings import Settings
from podify_podcast.infrastructure.tts.deepinfra_adapter import DeepInfraSynthesizer
from podify_podcast.infrastructure.tts.inference_adapter import InferenceSynthesizer
from podify_podcast.infrastructure.tts.openai_adapter import OpenAISynthesizer


class SettingsProviderRegistry(ProviderRegistry):
    """Resolves the text and speech providers a config asks for.

    Construction of each adapter checks its credentials, so a missing key
    surfaces as ConfigurationError before any pipeline stage starts.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def text_generator(self, provider: LlmProvider) -> TextGenerator:
        s = self.settings
        if provider == LlmProvider.OPENROUTER:
            return OpenRouterTextGenerator(
                api_key=s.openrouter_api_key, model=s.openrouter_model, timeout_s=s.provider_timeout_s
            )
        if provider == LlmProvider.INFERENCE:
            return InferenceTextGenerator(api_key=s.inference_api_key, timeout_s=s.provider_timeout_s)
        raise ConfigurationError(f"Unsupported LLM provider: {provider}")

    def script_writer(self, config: PodcastConfig) -> ScriptWriter:
        return DialogueScriptWriter(generator=self.text_generator(config.llm_provider))

    def synthesizer(self, config: PodcastConfig) -> SpeechSynthesizer:
        s = self.settings
        provider = config.tts_provider
        if provider == TtsProvider.DEEPINFRA:
            return DeepInfraSynthesizer(api_key=s.deepinfra_api_key, timeout_s=s.provider_timeout_s)
        if provider == TtsProvider.INFERENCE:
            return InferenceSynthesizer(api_key=s.inference_api_key, timeout_s=s.provider_timeout_s)
        if provider == TtsProvider.OPENAI:
            return OpenAISynthesizer(api_key=s.openai_api_key, timeout_s=s.provider_timeout_s)
        raise ConfigurationError(f"Unsupported TTS provider: {provider}")
