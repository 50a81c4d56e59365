import copy
import threading
from datetime import UTC, datetime
from uuid import uuid4

from .constants import DEFAULT_DURATION_MINUTES
from .exceptions import SessionNotFoundError
from .interview import asked_questions
from .interview.chunking import chunk_slice
from .interview.routing import RouteDecision
from .interview_state import InterviewState, is_terminal_state, transition
from .models import EngineState, InterviewSession, Question, RouteAction
from .storage_interface import SessionStore


class MemoryStorage(SessionStore):
    """In-memory session store for testing and development."""

    def __init__(self):
        self._sessions: dict[str, InterviewSession] = {}
        self._session_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _get_session_lock(self, session_id: str) -> threading.Lock:
        with self._lock:
            if session_id not in self._session_locks:
                self._session_locks[session_id] = threading.Lock()
            return self._session_locks[session_id]

    def _require(self, session_id: str) -> InterviewSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _read(self, session_id: str) -> InterviewSession:
        with self._get_session_lock(session_id):
            # Deep copy to avoid external mutations
            return copy.deepcopy(self._require(session_id))

    def _mutate(self, session_id: str, change):
        """Read-modify-write one session under its lock; returns whatever `change` returns."""
        with self._get_session_lock(session_id):
            session = copy.deepcopy(self._require(session_id))
            result = change(session)
            session.updated_at = datetime.now(UTC)
            self._sessions[session_id] = session
            return result

    def create_session(
        self, session_id: str | None = None, duration_minutes: int = DEFAULT_DURATION_MINUTES
    ) -> InterviewSession:
        session = InterviewSession(id=session_id or str(uuid4()), duration_minutes=duration_minutes)
        with self._get_session_lock(session.id):
            self._sessions[session.id] = copy.deepcopy(session)
        return session

    def get_session(self, session_id: str) -> InterviewSession | None:
        with self._get_session_lock(session_id):
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def set_state(self, session_id: str, state: InterviewState) -> None:
        def change(session: InterviewSession) -> None:
            session.state = transition(session.state, state)

        self._mutate(session_id, change)

    def set_primary_questions(self, session_id: str, questions: list[Question]) -> None:
        def change(session: InterviewSession) -> None:
            session.primary_questions = copy.deepcopy(questions)

        self._mutate(session_id, change)

    def get_primary_questions(self, session_id: str) -> list[Question]:
        return self._read(session_id).primary_questions

    def get_questions_for_chunk(self, session_id: str, chunk_number: int, chunk_size: int) -> list[Question]:
        return chunk_slice(self.get_primary_questions(session_id), chunk_number, chunk_size)

    def add_asked_question(self, session_id: str, question: Question, insert_after: str | None = None) -> None:
        def change(session: InterviewSession) -> None:
            session.asked_questions = asked_questions.add_or_merge(
                session.asked_questions, question.model_copy(deep=True), insert_after
            )

        self._mutate(session_id, change)

    def mark_question_asked(self, session_id: str, question_id: str, at: datetime | None = None) -> None:
        def change(session: InterviewSession) -> None:
            session.asked_questions = asked_questions.mark_asked(session.asked_questions, question_id, at)

        self._mutate(session_id, change)

    def update_answer(
        self,
        session_id: str,
        question_id: str,
        user_answer: str,
        correctness: int | None,
        route_action: RouteAction | None = None,
    ) -> tuple[RouteDecision, list[str]]:
        def change(session: InterviewSession) -> tuple[RouteDecision, list[str]]:
            updated, decision, removed = asked_questions.apply_answer(
                session.asked_questions, question_id, user_answer, correctness, route_action
            )
            session.asked_questions = updated
            return decision, removed

        return self._mutate(session_id, change)

    def remove_asked_question(self, session_id: str, question_id: str) -> None:
        def change(session: InterviewSession) -> None:
            session.asked_questions = asked_questions.remove_question(session.asked_questions, question_id)

        self._mutate(session_id, change)

    def get_asked_questions(self, session_id: str) -> list[Question]:
        return asked_questions.sort_by_asked_at(self._read(session_id).asked_questions)

    def mark_chunk_preprocessed(self, session_id: str, chunk_number: int) -> None:
        def change(session: InterviewSession) -> None:
            if chunk_number not in session.preprocessed_chunks:
                session.preprocessed_chunks.append(chunk_number)

        self._mutate(session_id, change)

    def get_preprocessed_chunks(self, session_id: str) -> set[int]:
        return set(self._read(session_id).preprocessed_chunks)

    def save_engine_state(self, session_id: str, state: EngineState) -> None:
        def change(session: InterviewSession) -> None:
            session.engine_state = state.model_copy(deep=True)

        self._mutate(session_id, change)

    def load_engine_state(self, session_id: str) -> EngineState | None:
        return self._read(session_id).engine_state

    def mark_session_complete(self, session_id: str) -> None:
        def change(session: InterviewSession) -> None:
            if session.is_complete:
                return
            session.is_complete = True
            session.ended_at = datetime.now(UTC)
            if not is_terminal_state(session.state) and session.state is InterviewState.IN_PROGRESS:
                session.state = InterviewState.COMPLETED

        self._mutate(session_id, change)

    def is_session_complete(self, session_id: str) -> bool:
        return self._read(session_id).is_complete
