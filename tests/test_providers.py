from types import SimpleNamespace
from unittest.mock import Mock, patch

import anthropic
import httpx
import openai
import pytest

from interview_engine.providers.base import Provider
from interview_engine.providers.exceptions import OverloadedError, ProviderConnectionError, ProviderResponseError
from interview_engine.providers.speech import OpenAISpeechSynthesizer

REQUEST = httpx.Request("POST", "https://api.example.com/v1")


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=REQUEST)


class TestOpenAIProvider:
    @pytest.fixture
    def provider(self):
        with patch("interview_engine.providers.openai.OpenAI"):
            return Provider.from_id("openai:gpt-4o-mini")

    def test_complete_returns_output_text(self, provider):
        provider.client.responses.create.return_value = SimpleNamespace(output_text='{"correctness": 70}')

        assert provider.complete("prompt", system="be strict") == '{"correctness": 70}'
        kwargs = provider.client.responses.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["instructions"] == "be strict"

    def test_rate_limit_is_overload(self, provider):
        provider.client.responses.create.side_effect = openai.RateLimitError(
            "slow down", response=_response(429), body=None
        )

        with pytest.raises(OverloadedError):
            provider.complete("prompt")

    def test_connection_error(self, provider):
        provider.client.responses.create.side_effect = openai.APIConnectionError(request=REQUEST)

        with pytest.raises(ProviderConnectionError):
            provider.complete("prompt")

    def test_empty_reply(self, provider):
        provider.client.responses.create.return_value = SimpleNamespace(output_text="")

        with pytest.raises(ProviderResponseError):
            provider.complete("prompt")


class TestAnthropicProvider:
    @pytest.fixture
    def provider(self):
        with patch("interview_engine.providers.anthropic.Anthropic"):
            return Provider.from_id("anthropic:claude-3-5-haiku-latest")

    def test_complete_joins_text_blocks_and_passes_system(self, provider):
        provider.client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="[1, 2]")]
        )

        assert provider.complete("prompt", system="be strict") == "[1, 2]"
        assert provider.client.messages.create.call_args.kwargs["system"] == "be strict"

    def test_overloaded_status_is_overload(self, provider):
        provider.client.messages.create.side_effect = anthropic.APIStatusError(
            "overloaded", response=_response(529), body=None
        )

        with pytest.raises(OverloadedError):
            provider.complete("prompt")

    def test_other_status_errors_propagate(self, provider):
        provider.client.messages.create.side_effect = anthropic.APIStatusError(
            "bad request", response=_response(400), body=None
        )

        with pytest.raises(anthropic.APIStatusError):
            provider.complete("prompt")


class TestGoogleProvider:
    @pytest.fixture
    def provider(self):
        with patch("interview_engine.providers.google.genai.Client"):
            return Provider.from_id("google:gemini-2.0-flash")

    def test_system_is_prepended(self, provider):
        provider.client.models.generate_content.return_value = SimpleNamespace(text="ok")

        assert provider.complete("prompt", system="be strict") == "ok"
        contents = provider.client.models.generate_content.call_args.kwargs["contents"]
        assert contents == "be strict\n\nprompt"

    def test_empty_reply(self, provider):
        provider.client.models.generate_content.return_value = SimpleNamespace(text=None)

        with pytest.raises(ProviderResponseError):
            provider.complete("prompt")


class TestSpeechSynthesizer:
    def test_returns_audio_bytes(self):
        client = Mock()
        client.audio.speech.create.return_value = SimpleNamespace(content=b"mp3")
        synthesizer = OpenAISpeechSynthesizer(client=client)

        assert synthesizer.synthesize("What is a closure?") == b"mp3"
        assert client.audio.speech.create.call_args.kwargs["input"] == "What is a closure?"

    def test_empty_audio_raises(self):
        client = Mock()
        client.audio.speech.create.return_value = SimpleNamespace(content=b"")

        with pytest.raises(ProviderResponseError):
            OpenAISpeechSynthesizer(client=client).synthesize("text")
