import json
import random
from datetime import UTC, datetime
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from interview_engine.cli_helpers import InterviewRunner, build_audio_renderer, load_context
from interview_engine.core.audio_storage import AudioRenderer
from interview_engine.core.config import EngineConfig
from interview_engine.core.exceptions import InterviewEngineError
from interview_engine.core.interview.question_generator import QuestionGenerator
from interview_engine.core.logging import init_logging, log_event, mask_text, set_run_id, set_trace_id
from interview_engine.core.models import JobContext, ResumeContext
from interview_engine.core.storage import DatabaseManager
from interview_engine.providers.base import Provider

app = typer.Typer(help="Interview Engine - adaptive technical interviews driven by a language model.")
console = Console()

# Load environment variables from .env file before reading settings
load_dotenv()
_config = EngineConfig()


def _init_logging_from_cli(
    log_level: str | None = None,
    log_file: str | None = None,
    log_format: str = "text",
    log_mask: bool = False,
) -> None:
    # Logs go to stderr so they never interleave with the interview on stdout
    init_logging(level=log_level, fmt=log_format, file_path=log_file, mask=log_mask, use_stderr=True)
    # Fresh run id for each CLI invocation; also set as initial trace id
    _rid = datetime.now(UTC).strftime("%Y%m%d%H%M%S%f")[-12:]
    set_run_id(_rid)
    set_trace_id(_rid)
    log_event(
        "cli.start",
        component="cli",
        operation="start",
        log_level=log_level or "INFO",
        log_file=log_file or "stderr",
        log_format=log_format,
        log_mask=log_mask,
    )


@app.command()
def generate(
    job: str = typer.Option(..., "--job", help="Job description JSON file"),
    resume: str = typer.Option(..., "--resume", help="Candidate resume JSON file"),
    out: str | None = typer.Option(None, help="Write the primary questions to this JSON file"),
    model: str = typer.Option(_config.model_id, help="Provider:model identifier"),
    seed: int | None = typer.Option(None, help="Seed for the question order shuffle"),
    log_level: str | None = typer.Option(None, help="Log level (DEBUG, INFO, ...)"),
    log_file: str | None = typer.Option(None, help="Log file path (default stderr)"),
    log_format: str = typer.Option("text", help="Log format: json|text"),
    log_mask: bool = typer.Option(False, help="Mask candidate text in logs"),
):
    """
    Generates the randomized primary question list without running an interview.
    """
    _init_logging_from_cli(log_level, log_file, log_format, log_mask)
    job_context = load_context(job, JobContext)
    resume_context = load_context(resume, ResumeContext)

    try:
        generator = QuestionGenerator(Provider.from_id(model), rng=random.Random(seed))
        questions = generator.generate(job_context, resume_context)
    except (InterviewEngineError, ValueError) as e:
        typer.echo(f"Error generating questions: {e}", err=True)
        raise typer.Exit(1)

    if not questions:
        typer.echo("No questions could be generated; try again.", err=True)
        raise typer.Exit(1)

    table = Table(title=f"{len(questions)} primary questions")
    table.add_column("#", justify="right")
    table.add_column("Category")
    table.add_column("Question")
    for number, question in enumerate(questions, start=1):
        table.add_row(str(number), question.category, question.text)
    console.print(table)

    if out:
        payload = [question.model_dump(mode="json") for question in questions]
        Path(out).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        typer.echo(f"Questions written to {out}")


@app.command()
def interview(
    job: str | None = typer.Option(None, "--job", help="Job description JSON file"),
    resume: str | None = typer.Option(None, "--resume", help="Candidate resume JSON file"),
    model: str = typer.Option(_config.model_id, help="Provider:model identifier"),
    session_id: str | None = typer.Option(None, "--session-id", help="Resume existing session by ID"),
    db_path: str = typer.Option(_config.db_path, help="Database file path"),
    log_level: str | None = typer.Option(None, help="Log level (DEBUG, INFO, ...)"),
    log_file: str | None = typer.Option(None, help="Log file path (default stderr)"),
    log_format: str = typer.Option("text", help="Log format: json|text"),
    log_mask: bool = typer.Option(False, help="Mask candidate text in logs"),
):
    """
    Runs a technical interview in the console with typed answers.
    """
    _init_logging_from_cli(log_level, log_file, log_format, log_mask)
    if session_id is None and (job is None or resume is None):
        typer.echo("--job and --resume are required for a new interview.", err=True)
        raise typer.Exit(1)

    job_context = load_context(job, JobContext)
    resume_context = load_context(resume, ResumeContext)
    try:
        runner = InterviewRunner.from_config(db_path, model, _config)
        summary = runner.run(job_context, resume_context, session_id=session_id)
    except (InterviewEngineError, ValueError) as e:
        typer.echo(f"Error during interview: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Session saved as {runner.pipeline.session_id}")
    typer.echo(
        f"Chunks never preprocessed: {summary.skipped_chunks} of {summary.total_chunks} "
        f"({summary.saved_ratio:.0%} of enrichment work saved)"
    )


@app.command()
def show(
    session_id: str = typer.Option(..., "--session-id", help="Session ID to display"),
    db_path: str = typer.Option(_config.db_path, help="Database file path"),
    log_level: str | None = typer.Option(None, help="Log level (DEBUG, INFO, ...)"),
    log_file: str | None = typer.Option(None, help="Log file path (default stderr)"),
    log_format: str = typer.Option("text", help="Log format: json|text"),
    log_mask: bool = typer.Option(False, help="Mask candidate text in output and logs"),
):
    """
    Display a stored session and its asked questions.
    """
    _init_logging_from_cli(log_level, log_file, log_format, log_mask)
    try:
        db_manager = DatabaseManager(db_path)
        session = db_manager.get_session(session_id)
        if session is None:
            typer.echo(f"Session {session_id} not found.", err=True)
            raise typer.Exit(1)
        asked = db_manager.get_asked_questions(session_id)
    except (InterviewEngineError, ValueError) as e:
        typer.echo(f"Error showing session: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Session: {session.id}")
    typer.echo(f"State: {session.state.value}")
    typer.echo(f"Created: {session.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    typer.echo(f"Primary questions: {len(session.primary_questions)}")
    typer.echo(f"Preprocessed chunks: {sorted(session.preprocessed_chunks)}")
    typer.echo(f"Complete: {'Yes' if session.is_complete else 'No'}")

    table = Table(title="Asked questions")
    table.add_column("Id")
    table.add_column("Queue")
    table.add_column("Question")
    table.add_column("Answer")
    table.add_column("Score", justify="right")
    for question in asked:
        answer = question.user_answer or ""
        table.add_row(
            question.id,
            question.queue_type,
            question.text,
            mask_text(answer),
            "" if question.correctness is None else str(question.correctness),
        )
    console.print(table)


@app.command("purge-audio")
def purge_audio(
    session_id: str = typer.Option(..., "--session-id", help="Session whose audio is deleted"),
    log_level: str | None = typer.Option(None, help="Log level (DEBUG, INFO, ...)"),
    log_file: str | None = typer.Option(None, help="Log file path (default stderr)"),
    log_format: str = typer.Option("text", help="Log format: json|text"),
):
    """
    Delete every stored audio object of a session.
    """
    _init_logging_from_cli(log_level, log_file, log_format)
    renderer: AudioRenderer | None = build_audio_renderer(_config)
    if renderer is None:
        typer.echo("Audio storage is not configured (set INTERVIEW_ENGINE_AUDIO_BUCKET).", err=True)
        raise typer.Exit(1)
    try:
        deleted = renderer.purge(session_id)
    except InterviewEngineError as e:
        typer.echo(f"Error purging audio: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {deleted} audio objects for session {session_id}.")


if __name__ == "__main__":
    app()
