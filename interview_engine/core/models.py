from datetime import UTC, datetime, timedelta
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from interview_engine.core.constants import DEFAULT_DURATION_MINUTES
from interview_engine.core.interview_state import InterviewState

QuestionCategory = Literal["technical", "non-technical", "followup"]
Difficulty = Literal["medium", "hard"]
QueueType = Literal["Q1", "Q2", "Q3"]
RouteAction = Literal["next_difficulty", "normal_flow", "followup"]


class Question(BaseModel):
    id: str = ""
    text: str
    category: QuestionCategory = "technical"
    difficulty: Difficulty | None = None
    reference_answer: str | None = None
    source_urls: list[str] = []
    audio_url: str | None = None
    topic_id: str | None = None
    parent_question_id: str | None = None
    queue_type: QueueType = "Q1"

    # Populated once the candidate answers
    user_answer: str | None = None
    correctness: int | None = None
    route_action: RouteAction | None = None
    asked_at: datetime | None = None

    @property
    def is_technical(self) -> bool:
        return self.category == "technical"

    @property
    def is_answered(self) -> bool:
        return self.user_answer is not None


class JobContext(BaseModel):
    title: str = ""
    seniority: str = ""
    tech_stack: list[str] = []
    description: str = ""

    def is_empty(self) -> bool:
        return not (self.title.strip() or self.description.strip() or self.tech_stack)


class ResumeContext(BaseModel):
    summary: str = ""
    skills: list[str] = []
    work_history: list[str] = []
    projects: list[str] = []
    certifications: list[str] = []

    def is_empty(self) -> bool:
        return not (
            self.summary.strip() or self.skills or self.work_history or self.projects or self.certifications
        )


class ReferenceAnswer(BaseModel):
    answer: str
    source_urls: list[str] = []


class Evaluation(BaseModel):
    score: int = Field(ge=0, le=100)
    route_action: RouteAction
    reason: str
    source_urls: list[str] = []
    reference_answer: str | None = None
    degraded: bool = False  # fallback result; routing must not act on it


class EngineState(BaseModel):
    """Session-scoped queue state of the adaptive engine.

    Transition functions in `interview.queue_engine` take one of these and return a
    new one; the store keeps a serialized snapshot after every transition.
    """

    primary: list[Question] = []
    depth: list[Question] = []
    remediation: list[Question] = []
    history: list[Question] = []
    current: Question | None = None

    @property
    def is_exhausted(self) -> bool:
        return not self.primary and not self.remediation


class Chunk(BaseModel):
    chunk_number: int
    questions: list[Question]
    preprocessed: bool = False


class CostSummary(BaseModel):
    total_chunks: int
    preprocessed_chunks: int
    questions_asked: int
    questions_answered: int

    @property
    def skipped_chunks(self) -> int:
        return max(0, self.total_chunks - self.preprocessed_chunks)

    @property
    def saved_ratio(self) -> float:
        if self.total_chunks == 0:
            return 0.0
        return self.skipped_chunks / self.total_chunks


class InterviewSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    state: InterviewState = InterviewState.INITIALIZING
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    primary_questions: list[Question] = []
    asked_questions: list[Question] = []
    preprocessed_chunks: list[int] = []
    engine_state: EngineState | None = None
    is_complete: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None

    @property
    def deadline(self) -> datetime:
        return self.created_at + timedelta(minutes=self.duration_minutes)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.deadline
