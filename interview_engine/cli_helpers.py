from pathlib import Path

import typer
from pydantic import BaseModel, ValidationError

from interview_engine.core.audio_storage import AudioRenderer, S3ObjectStorage
from interview_engine.core.config import EngineConfig
from interview_engine.core.constants import EXIT_SIGNAL
from interview_engine.core.io_interface import IOInterface, RichConsoleIO
from interview_engine.core.logging import log_event
from interview_engine.core.models import CostSummary, JobContext, ResumeContext
from interview_engine.core.pipeline import TechnicalInterviewPipeline
from interview_engine.core.storage import DatabaseManager
from interview_engine.core.storage_interface import SessionStore
from interview_engine.providers.base import Provider
from interview_engine.providers.speech import OpenAISpeechSynthesizer


def load_context(path: str | None, model: type[BaseModel]) -> BaseModel | None:
    """Read a job or resume JSON file; exits the CLI on unreadable input."""
    if path is None:
        return None
    file_path = Path(path)
    if not file_path.exists():
        typer.echo(f"File not found: {file_path}", err=True)
        raise typer.Exit(1)
    try:
        return model.model_validate_json(file_path.read_text(encoding="utf-8"))
    except ValidationError as e:
        typer.echo(f"Invalid {model.__name__} in {file_path}: {e}", err=True)
        raise typer.Exit(1) from e


def build_audio_renderer(config: EngineConfig) -> AudioRenderer | None:
    if not config.audio_enabled:
        return None
    storage = S3ObjectStorage(
        config.audio_bucket,
        region=config.audio_region,
        endpoint_url=config.audio_endpoint_url,
        public_base_url=config.audio_public_base_url,
    )
    return AudioRenderer(OpenAISpeechSynthesizer(config.tts_model, config.tts_voice), storage)


class InterviewRunner:
    """Runs a technical interview in the console on top of the pipeline."""

    def __init__(
        self,
        store: SessionStore,
        provider: Provider,
        config: EngineConfig | None = None,
        audio: AudioRenderer | None = None,
        io: IOInterface | None = None,
    ):
        self.config = config or EngineConfig()
        self.pipeline = TechnicalInterviewPipeline(store, provider, audio=audio, config=self.config)
        self.io = io

    @classmethod
    def from_config(cls, db_path: str, model_id: str, config: EngineConfig | None = None) -> "InterviewRunner":
        config = config or EngineConfig()
        return cls(DatabaseManager(db_path), Provider.from_id(model_id), config, build_audio_renderer(config))

    def run(
        self,
        job: JobContext | None,
        resume: ResumeContext | None,
        session_id: str | None = None,
    ) -> CostSummary:
        """Start (or resume) a session and ask questions until the interview ends."""
        if session_id:
            self.pipeline.resume(session_id)
        else:
            self.pipeline.start(job, resume)
        io = self.io or RichConsoleIO(self.pipeline.session_id)
        io.print_info(f"Session {self.pipeline.session_id} started")

        asked = 0
        while True:
            question = self.pipeline.next_question()
            if question is None:
                break
            asked += 1
            self.pipeline.mark_asked(question.id)
            io.print_question(asked, question.text, subtitle=question.difficulty or question.category)

            answer = io.input("Your answer: ")
            if answer == EXIT_SIGNAL:
                log_event("interview.exit_requested", component="cli", session_id=self.pipeline.session_id)
                break

            evaluation = self.pipeline.record_answer(question.id, answer)
            if evaluation is not None:
                io.print_info(f"Score {evaluation.score}/100: {evaluation.reason}")

        summary = self.pipeline.complete()
        io.print_info(
            f"Interview complete: {summary.questions_answered} answered, "
            f"{summary.preprocessed_chunks}/{summary.total_chunks} chunks preprocessed"
        )
        return summary
