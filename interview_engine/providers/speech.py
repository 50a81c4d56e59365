import os
from abc import ABC, abstractmethod

from openai import OpenAI

from interview_engine.core.constants import DEFAULT_TTS_MODEL, DEFAULT_TTS_VOICE
from interview_engine.core.logging import span

from .exceptions import ProviderResponseError


class SpeechSynthesizer(ABC):
    """Text-to-speech service."""

    @abstractmethod
    def synthesize(self, text: str) -> bytes:
        """Convert text to speech audio."""
        pass


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    """OpenAI text-to-speech implementation."""

    def __init__(self, model: str = DEFAULT_TTS_MODEL, voice: str = DEFAULT_TTS_VOICE, client: OpenAI | None = None):
        self.model = model
        self.voice = voice
        self.client = client or OpenAI(api_key=os.environ.get("OPENAI_API_KEY"))

    def synthesize(self, text: str) -> bytes:
        with span(
            "tts.synthesize",
            component="tts",
            operation="synthesize",
            provider="openai",
            model=self.model,
            text_len=len(text),
        ):
            response = self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
            )
            audio = response.content
            if not audio:
                raise ProviderResponseError("Empty audio from OpenAI speech API")
            return audio
