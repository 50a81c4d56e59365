import logging

import pytest

from interview_engine.core.audio_storage import AudioRenderer, MemoryObjectStorage
from interview_engine.core.config import EngineConfig
from interview_engine.core.logging import set_masking, set_run_id, set_trace_id
from interview_engine.core.memory_storage import MemoryStorage
from interview_engine.core.models import JobContext, ResumeContext
from tests.mocks.mock_provider import ScriptedProvider
from tests.mocks.mock_speech import FakeSynthesizer


@pytest.fixture(autouse=True)
def reset_logging_context():
    """Keep correlation ids and masking from leaking between tests."""
    yield
    set_trace_id(None)
    set_run_id("")
    set_masking(False)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def store():
    return MemoryStorage()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def job():
    return JobContext(
        title="Backend Engineer",
        seniority="senior",
        tech_stack=["Python", "PostgreSQL"],
        description="Build and operate APIs.",
    )


@pytest.fixture
def resume():
    return ResumeContext(
        summary="Eight years of backend work.",
        skills=["Python", "SQL"],
        work_history=["Acme Corp, backend engineer"],
    )


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def object_storage():
    return MemoryObjectStorage()


@pytest.fixture
def audio(synthesizer, object_storage):
    return AudioRenderer(synthesizer, object_storage)


@pytest.fixture
def fast_config(monkeypatch):
    """Config with no readiness wait so degraded paths return immediately."""
    monkeypatch.setenv("INTERVIEW_ENGINE_CHUNK_SIZE", "2")
    monkeypatch.setenv("INTERVIEW_ENGINE_CHUNK_WAIT_SECONDS", "0")
    monkeypatch.setenv("INTERVIEW_ENGINE_CHUNK_POLL_SECONDS", "0.01")
    return EngineConfig()
