import json
import re
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar
from uuid import uuid4

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.orm import sessionmaker

from .constants import DEFAULT_DB_PATH, DEFAULT_DURATION_MINUTES
from .database_models import (
    AskedQuestionTable,
    Base,  # SQLAlchemy ORM models
    InterviewSessionTable,
    PreprocessedChunkTable,
    PrimaryQuestionTable,
    QuestionColumns,
    enable_sqlite_foreign_keys,
)
from .exceptions import InterviewEngineError, PersistenceError, SessionNotFoundError
from .interview import asked_questions
from .interview.routing import RouteDecision
from .interview_state import InterviewState, transition
from .logging import span
from .models import EngineState, InterviewSession, Question, RouteAction  # Pydantic models
from .storage_interface import SessionStore

T = TypeVar("T")


def _utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; everything is written in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def question_to_columns(question: Question, position: int) -> dict:
    return {
        "question_id": question.id,
        "position": position,
        "text": question.text,
        "category": question.category,
        "difficulty": question.difficulty,
        "reference_answer": question.reference_answer,
        "source_urls": json.dumps(question.source_urls),
        "audio_url": question.audio_url,
        "topic_id": question.topic_id,
        "parent_question_id": question.parent_question_id,
        "queue_type": question.queue_type,
        "user_answer": question.user_answer,
        "correctness": question.correctness,
        "route_action": question.route_action,
        "asked_at": question.asked_at,
    }


def question_from_row(row: QuestionColumns) -> Question:
    return Question(
        id=row.question_id,
        text=row.text,
        category=row.category,
        difficulty=row.difficulty,
        reference_answer=row.reference_answer,
        source_urls=json.loads(row.source_urls or "[]"),
        audio_url=row.audio_url,
        topic_id=row.topic_id,
        parent_question_id=row.parent_question_id,
        queue_type=row.queue_type,
        user_answer=row.user_answer,
        correctness=row.correctness,
        route_action=row.route_action,
        asked_at=_utc(row.asked_at),
    )


class DatabaseManager(SessionStore):
    """SQLAlchemy session store (SQLite by default)."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize database manager with SQLite database."""
        self.db_path = self._validate_db_path(db_path)
        self._session_locks: dict[str, threading.Lock] = {}
        self._lock_manager_lock = threading.Lock()

        # Create database directory if it doesn't exist
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

        # Create engine and session factory with connection pooling
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # Enable foreign key constraints for SQLite
        enable_sqlite_foreign_keys(self.engine)
        Base.metadata.create_all(bind=self.engine)

    def _validate_db_path(self, db_path: str) -> str:
        """Validate database path to prevent path traversal attacks."""
        try:
            resolved = Path(db_path).resolve()
            current_dir = Path.cwd().resolve()

            # Ensure the resolved path is within the current working directory or its subdirectories
            if not resolved.is_relative_to(current_dir):
                raise ValueError("Database path outside working directory not allowed")

            return str(resolved)
        except (ValueError, OSError) as e:
            raise ValueError(f"Invalid database path: {e}")

    def _validate_session_id(self, session_id: str) -> str:
        """Validate session ID format to prevent injection attacks."""
        if not re.match(r"^[a-f0-9-]{36}$", session_id):
            raise ValueError("Invalid session ID format")
        return session_id

    def _get_session_lock(self, session_id: str) -> threading.Lock:
        """Get or create a lock for a specific session to prevent race conditions."""
        with self._lock_manager_lock:
            if session_id not in self._session_locks:
                self._session_locks[session_id] = threading.Lock()
            return self._session_locks[session_id]

    def _run(self, operation: str, session_id: str, work: Callable[[DbSession], T], write: bool = True) -> T:
        """Run one unit of work for a session: locked, in a transaction, errors wrapped."""
        session_id = self._validate_session_id(session_id)
        with span(
            f"db.{operation}",
            component="db",
            operation=operation,
            session_id=session_id,
            db_engine="sqlite",
            db_path=Path(self.db_path).name,
        ):
            with self._get_session_lock(session_id):
                with self.SessionLocal() as db_session:
                    try:
                        if db_session.get(InterviewSessionTable, session_id) is None:
                            raise SessionNotFoundError(session_id)
                        result = work(db_session)
                        if write:
                            db_session.commit()
                        return result
                    except InterviewEngineError:
                        db_session.rollback()
                        raise
                    except SQLAlchemyError as e:
                        db_session.rollback()
                        raise PersistenceError(f"Failed to {operation} for session {session_id}: {e}") from e

    def _load_questions(self, db_session: DbSession, table, session_id: str) -> list[Question]:
        rows = db_session.execute(
            select(table).where(table.session_id == session_id).order_by(table.position)
        ).scalars()
        return [question_from_row(row) for row in rows]

    def _replace_questions(self, db_session: DbSession, table, session_id: str, questions: list[Question]) -> None:
        db_session.execute(delete(table).where(table.session_id == session_id))
        db_session.flush()
        for position, question in enumerate(questions):
            db_session.add(table(session_id=session_id, **question_to_columns(question, position)))

    def _touch(self, db_session: DbSession, session_id: str) -> InterviewSessionTable:
        row = db_session.get(InterviewSessionTable, session_id)
        row.updated_at = datetime.now(UTC)
        return row

    def create_session(
        self, session_id: str | None = None, duration_minutes: int = DEFAULT_DURATION_MINUTES
    ) -> InterviewSession:
        session = InterviewSession(id=session_id or str(uuid4()), duration_minutes=duration_minutes)
        self._validate_session_id(session.id)
        with span("db.create_session", component="db", operation="create_session", session_id=session.id):
            with self._get_session_lock(session.id):
                with self.SessionLocal() as db_session:
                    try:
                        db_session.add(
                            InterviewSessionTable(
                                id=session.id,
                                state=session.state.value,
                                duration_minutes=session.duration_minutes,
                                is_complete=False,
                                created_at=session.created_at,
                                updated_at=session.updated_at,
                            )
                        )
                        db_session.commit()
                    except SQLAlchemyError as e:
                        db_session.rollback()
                        raise PersistenceError(f"Failed to create session {session.id}: {e}") from e
        return session

    def get_session(self, session_id: str) -> InterviewSession | None:
        def work(db_session: DbSession) -> InterviewSession:
            row = db_session.get(InterviewSessionTable, session_id)
            return InterviewSession(
                id=row.id,
                state=InterviewState(row.state),
                duration_minutes=row.duration_minutes,
                primary_questions=self._load_questions(db_session, PrimaryQuestionTable, session_id),
                asked_questions=self._load_questions(db_session, AskedQuestionTable, session_id),
                preprocessed_chunks=sorted(chunk.chunk_number for chunk in row.preprocessed_chunks),
                engine_state=EngineState.model_validate_json(row.engine_state) if row.engine_state else None,
                is_complete=row.is_complete,
                created_at=_utc(row.created_at),
                updated_at=_utc(row.updated_at),
                ended_at=_utc(row.ended_at),
            )

        try:
            return self._run("get_session", session_id, work, write=False)
        except SessionNotFoundError:
            return None

    def set_state(self, session_id: str, state: InterviewState) -> None:
        def work(db_session: DbSession) -> None:
            row = self._touch(db_session, session_id)
            row.state = transition(InterviewState(row.state), state).value

        self._run("set_state", session_id, work)

    def set_primary_questions(self, session_id: str, questions: list[Question]) -> None:
        def work(db_session: DbSession) -> None:
            self._replace_questions(db_session, PrimaryQuestionTable, session_id, questions)
            self._touch(db_session, session_id)

        self._run("set_primary_questions", session_id, work)

    def get_primary_questions(self, session_id: str) -> list[Question]:
        return self._run(
            "get_primary_questions",
            session_id,
            lambda db_session: self._load_questions(db_session, PrimaryQuestionTable, session_id),
            write=False,
        )

    def get_questions_for_chunk(self, session_id: str, chunk_number: int, chunk_size: int) -> list[Question]:
        start = chunk_number * chunk_size

        def work(db_session: DbSession) -> list[Question]:
            rows = db_session.execute(
                select(PrimaryQuestionTable)
                .where(PrimaryQuestionTable.session_id == session_id)
                .order_by(PrimaryQuestionTable.position)
                .offset(start)
                .limit(chunk_size)
            ).scalars()
            return [question_from_row(row) for row in rows]

        return self._run("get_questions_for_chunk", session_id, work, write=False)

    def _mutate_asked(self, operation: str, session_id: str, change: Callable[[list[Question]], tuple[list[Question], T]]) -> T:
        def work(db_session: DbSession) -> T:
            current = self._load_questions(db_session, AskedQuestionTable, session_id)
            updated, result = change(current)
            self._replace_questions(db_session, AskedQuestionTable, session_id, updated)
            self._touch(db_session, session_id)
            return result

        return self._run(operation, session_id, work)

    def add_asked_question(self, session_id: str, question: Question, insert_after: str | None = None) -> None:
        self._mutate_asked(
            "add_asked_question",
            session_id,
            lambda current: (asked_questions.add_or_merge(current, question, insert_after), None),
        )

    def mark_question_asked(self, session_id: str, question_id: str, at: datetime | None = None) -> None:
        self._mutate_asked(
            "mark_question_asked",
            session_id,
            lambda current: (asked_questions.mark_asked(current, question_id, at), None),
        )

    def update_answer(
        self,
        session_id: str,
        question_id: str,
        user_answer: str,
        correctness: int | None,
        route_action: RouteAction | None = None,
    ) -> tuple[RouteDecision, list[str]]:
        def change(current: list[Question]) -> tuple[list[Question], tuple[RouteDecision, list[str]]]:
            updated, decision, removed = asked_questions.apply_answer(
                current, question_id, user_answer, correctness, route_action
            )
            return updated, (decision, removed)

        return self._mutate_asked("update_answer", session_id, change)

    def remove_asked_question(self, session_id: str, question_id: str) -> None:
        self._mutate_asked(
            "remove_asked_question",
            session_id,
            lambda current: (asked_questions.remove_question(current, question_id), None),
        )

    def get_asked_questions(self, session_id: str) -> list[Question]:
        questions = self._run(
            "get_asked_questions",
            session_id,
            lambda db_session: self._load_questions(db_session, AskedQuestionTable, session_id),
            write=False,
        )
        return asked_questions.sort_by_asked_at(questions)

    def mark_chunk_preprocessed(self, session_id: str, chunk_number: int) -> None:
        def work(db_session: DbSession) -> None:
            exists = db_session.execute(
                select(PreprocessedChunkTable.id).where(
                    PreprocessedChunkTable.session_id == session_id,
                    PreprocessedChunkTable.chunk_number == chunk_number,
                )
            ).first()
            if exists is None:
                db_session.add(PreprocessedChunkTable(session_id=session_id, chunk_number=chunk_number))
                self._touch(db_session, session_id)

        self._run("mark_chunk_preprocessed", session_id, work)

    def get_preprocessed_chunks(self, session_id: str) -> set[int]:
        def work(db_session: DbSession) -> set[int]:
            rows = db_session.execute(
                select(PreprocessedChunkTable.chunk_number).where(PreprocessedChunkTable.session_id == session_id)
            ).scalars()
            return set(rows)

        return self._run("get_preprocessed_chunks", session_id, work, write=False)

    def save_engine_state(self, session_id: str, state: EngineState) -> None:
        def work(db_session: DbSession) -> None:
            row = self._touch(db_session, session_id)
            row.engine_state = state.model_dump_json()

        self._run("save_engine_state", session_id, work)

    def load_engine_state(self, session_id: str) -> EngineState | None:
        def work(db_session: DbSession) -> EngineState | None:
            row = db_session.get(InterviewSessionTable, session_id)
            if not row.engine_state:
                return None
            return EngineState.model_validate_json(row.engine_state)

        return self._run("load_engine_state", session_id, work, write=False)

    def mark_session_complete(self, session_id: str) -> None:
        def work(db_session: DbSession) -> None:
            row = db_session.get(InterviewSessionTable, session_id)
            if row.is_complete:
                return
            row.is_complete = True
            row.ended_at = datetime.now(UTC)
            row.updated_at = row.ended_at
            if row.state == InterviewState.IN_PROGRESS.value:
                row.state = InterviewState.COMPLETED.value

        self._run("mark_session_complete", session_id, work)

    def is_session_complete(self, session_id: str) -> bool:
        return self._run(
            "is_session_complete",
            session_id,
            lambda db_session: bool(db_session.get(InterviewSessionTable, session_id).is_complete),
            write=False,
        )

    def close(self) -> None:
        """Close the database engine and clean up resources."""
        if hasattr(self, "engine") and self.engine:
            self.engine.dispose()
