from abc import ABC, abstractmethod
from datetime import datetime

from .constants import DEFAULT_DURATION_MINUTES
from .interview.routing import RouteDecision
from .interview_state import InterviewState
from .models import EngineState, InterviewSession, Question, RouteAction


class SessionStore(ABC):
    """Abstract interface for interview session storage.

    Every mutation is a read-modify-write under a per-session lock. Write failures
    raise PersistenceError; an unknown session raises SessionNotFoundError.
    """

    @abstractmethod
    def create_session(
        self, session_id: str | None = None, duration_minutes: int = DEFAULT_DURATION_MINUTES
    ) -> InterviewSession:
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> InterviewSession | None:
        pass

    @abstractmethod
    def set_state(self, session_id: str, state: InterviewState) -> None:
        """Move the session through its lifecycle (validated transition)."""
        pass

    @abstractmethod
    def set_primary_questions(self, session_id: str, questions: list[Question]) -> None:
        pass

    @abstractmethod
    def get_primary_questions(self, session_id: str) -> list[Question]:
        pass

    @abstractmethod
    def get_questions_for_chunk(self, session_id: str, chunk_number: int, chunk_size: int) -> list[Question]:
        """Primary questions `[n*size, (n+1)*size)`."""
        pass

    @abstractmethod
    def add_asked_question(self, session_id: str, question: Question, insert_after: str | None = None) -> None:
        """Merge by id if stored; otherwise splice after `insert_after` or append."""
        pass

    @abstractmethod
    def mark_question_asked(self, session_id: str, question_id: str, at: datetime | None = None) -> None:
        pass

    @abstractmethod
    def update_answer(
        self,
        session_id: str,
        question_id: str,
        user_answer: str,
        correctness: int | None,
        route_action: RouteAction | None = None,
    ) -> tuple[RouteDecision, list[str]]:
        """Record an answer and prune follow-ups atomically. Returns the decision and removed ids."""
        pass

    @abstractmethod
    def remove_asked_question(self, session_id: str, question_id: str) -> None:
        pass

    @abstractmethod
    def get_asked_questions(self, session_id: str) -> list[Question]:
        """Sorted by ask time, never-asked entries last."""
        pass

    @abstractmethod
    def mark_chunk_preprocessed(self, session_id: str, chunk_number: int) -> None:
        pass

    @abstractmethod
    def get_preprocessed_chunks(self, session_id: str) -> set[int]:
        pass

    @abstractmethod
    def save_engine_state(self, session_id: str, state: EngineState) -> None:
        pass

    @abstractmethod
    def load_engine_state(self, session_id: str) -> EngineState | None:
        pass

    @abstractmethod
    def mark_session_complete(self, session_id: str) -> None:
        pass

    @abstractmethod
    def is_session_complete(self, session_id: str) -> bool:
        pass
