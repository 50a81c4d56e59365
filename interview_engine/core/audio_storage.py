"""Object storage for rendered question audio, and the renderer that fills it."""

import logging
import threading
from abc import ABC, abstractmethod

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from interview_engine.providers.speech import SpeechSynthesizer

from .constants import AUDIO_KEY_TEMPLATE
from .exceptions import PersistenceError
from .logging import log_event, span
from .models import Question

# S3 DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000


class ObjectStorage(ABC):
    """Abstract interface for blob storage keyed by path-like keys."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        """Store bytes under key. Returns a URL for the stored object."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every object whose key starts with prefix. Returns the number deleted."""
        pass


class MemoryObjectStorage(ObjectStorage):
    """In-memory object storage for testing and development."""

    def __init__(self, base_url: str = "memory://audio"):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        with self._lock:
            self.objects[key] = data
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self.objects if key.startswith(prefix)]
            for key in keys:
                del self.objects[key]
            return len(keys)


class S3ObjectStorage(ObjectStorage):
    """S3 (or S3-compatible, e.g. MinIO) object storage via boto3."""

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region or "us-east-1"
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=self.region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path" if endpoint_url else "auto"},
            ),
        )

    def _url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        with span("s3.put_object", component="object_storage", operation="put", key=key, size=len(data)):
            try:
                self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
            except (ClientError, BotoCoreError) as e:
                raise PersistenceError(f"Failed to upload {key}: {e}") from e
        return self._url_for(key)

    def delete(self, key: str) -> None:
        with span("s3.delete_object", component="object_storage", operation="delete", key=key):
            try:
                self.client.delete_object(Bucket=self.bucket, Key=key)
            except (ClientError, BotoCoreError) as e:
                raise PersistenceError(f"Failed to delete {key}: {e}") from e

    def delete_by_prefix(self, prefix: str) -> int:
        deleted = 0
        with span("s3.delete_prefix", component="object_storage", operation="delete_by_prefix", prefix=prefix):
            try:
                paginator = self.client.get_paginator("list_objects_v2")
                keys: list[str] = []
                for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    keys.extend(obj["Key"] for obj in page.get("Contents", []))

                for start in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[start : start + DELETE_BATCH_SIZE]
                    self.client.delete_objects(
                        Bucket=self.bucket,
                        Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                    )
                    deleted += len(batch)
            except (ClientError, BotoCoreError) as e:
                raise PersistenceError(f"Failed to delete objects under {prefix}: {e}") from e
        return deleted


def session_audio_prefix(session_id: str) -> str:
    return AUDIO_KEY_TEMPLATE.format(session_id=session_id)


def question_audio_key(session_id: str, question_id: str) -> str:
    return f"{session_audio_prefix(session_id)}{question_id}.mp3"


class AudioRenderer:
    """Renders question text to speech and stores it per session."""

    def __init__(self, synthesizer: SpeechSynthesizer, storage: ObjectStorage):
        self.synthesizer = synthesizer
        self.storage = storage

    def render(self, session_id: str, question: Question) -> str | None:
        """Return the stored audio URL, or None when synthesis or upload fails."""
        try:
            audio = self.synthesizer.synthesize(question.text)
            return self.storage.put(question_audio_key(session_id, question.id), audio)
        except Exception as e:  # noqa: BLE001 : missing audio falls back to client-side speech
            log_event(
                "audio.render_failed",
                component="audio",
                operation="render",
                session_id=session_id,
                question_id=question.id,
                error_type=type(e).__name__,
                error_msg=str(e),
                level=logging.WARNING,
            )
            return None

    def purge(self, session_id: str) -> int:
        """Delete all audio stored for a session."""
        deleted = self.storage.delete_by_prefix(session_audio_prefix(session_id))
        log_event(
            "audio.purged",
            component="audio",
            operation="purge",
            session_id=session_id,
            deleted=deleted,
        )
        return deleted
