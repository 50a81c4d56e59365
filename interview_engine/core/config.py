"""Engine configuration loaded from environment variables."""

import os

from .constants import (
    DEFAULT_CHUNK_POLL_SECONDS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CHUNK_WAIT_SECONDS,
    DEFAULT_DB_PATH,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_MODEL_ID,
    DEFAULT_TTS_MODEL,
    DEFAULT_TTS_VOICE,
    MAX_CHUNK_SIZE,
)


class EngineConfig:
    """Manages interview engine settings from environment variables.

    Out-of-range or malformed values fall back to the defaults rather than failing,
    so a bad deployment variable never prevents an interview from starting.
    """

    def __init__(self):
        self.chunk_size = self._get_int("INTERVIEW_ENGINE_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, 1, MAX_CHUNK_SIZE)
        self.chunk_wait_seconds = self._get_float(
            "INTERVIEW_ENGINE_CHUNK_WAIT_SECONDS", DEFAULT_CHUNK_WAIT_SECONDS, 0.0, 600.0
        )
        self.chunk_poll_seconds = self._get_float(
            "INTERVIEW_ENGINE_CHUNK_POLL_SECONDS", DEFAULT_CHUNK_POLL_SECONDS, 0.01, 30.0
        )
        self.duration_minutes = self._get_int(
            "INTERVIEW_ENGINE_DURATION_MINUTES", DEFAULT_DURATION_MINUTES, 1, 480
        )
        self.model_id = self._get_model_id()
        self.tts_model = os.getenv("INTERVIEW_ENGINE_TTS_MODEL") or DEFAULT_TTS_MODEL
        self.tts_voice = os.getenv("INTERVIEW_ENGINE_TTS_VOICE") or DEFAULT_TTS_VOICE
        self.audio_bucket = os.getenv("INTERVIEW_ENGINE_AUDIO_BUCKET") or None
        self.audio_region = os.getenv("INTERVIEW_ENGINE_AUDIO_REGION") or None
        self.audio_endpoint_url = os.getenv("INTERVIEW_ENGINE_AUDIO_ENDPOINT_URL") or None
        self.audio_public_base_url = os.getenv("INTERVIEW_ENGINE_AUDIO_PUBLIC_BASE_URL") or None
        self.db_path = os.getenv("INTERVIEW_ENGINE_DB_PATH") or DEFAULT_DB_PATH

    @property
    def audio_enabled(self) -> bool:
        return self.audio_bucket is not None

    @property
    def chunk_wait_attempts(self) -> int:
        """Number of readiness polls that fit in the wait budget."""
        return max(0, int(self.chunk_wait_seconds / self.chunk_poll_seconds))

    def _get_int(self, name: str, default: int, minimum: int, maximum: int) -> int:
        try:
            value = int(os.getenv(name, str(default)))

            # Validate reasonable range
            if value < minimum or value > maximum:
                return default

            return value
        except (ValueError, TypeError):
            return default

    def _get_float(self, name: str, default: float, minimum: float, maximum: float) -> float:
        try:
            value = float(os.getenv(name, str(default)))

            if value < minimum or value > maximum:
                return default

            return value
        except (ValueError, TypeError):
            return default

    def _get_model_id(self) -> str:
        model_id = os.getenv("INTERVIEW_ENGINE_MODEL", DEFAULT_MODEL_ID)
        if ":" not in model_id:
            return DEFAULT_MODEL_ID
        return model_id
