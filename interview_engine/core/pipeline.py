import logging
from collections.abc import Callable
from datetime import UTC, datetime

from interview_engine.core.audio_storage import AudioRenderer
from interview_engine.core.config import EngineConfig
from interview_engine.core.exceptions import (
    ConfigurationError,
    GenerationError,
    QuestionNotFoundError,
    SessionNotFoundError,
)
from interview_engine.core.interview.answer_grader import AnswerGrader, is_blank
from interview_engine.core.interview.asked_questions import find_index
from interview_engine.core.interview.chunk_scheduler import ChunkScheduler
from interview_engine.core.interview.chunking import (
    chunk_count,
    chunk_number_for,
    chunk_number_for_index,
    interleave_queues,
    split_into_chunks,
)
from interview_engine.core.interview.preprocessing import PreprocessingPipeline
from interview_engine.core.interview.question_generator import QuestionGenerator
from interview_engine.core.interview.queue_engine import QueueEngine
from interview_engine.core.interview.routing import RouteDecision, depth_followup_id, depth_root_id
from interview_engine.core.interview_state import InterviewState
from interview_engine.core.logging import log_event, mask_text, set_trace_id, span
from interview_engine.core.models import (
    Chunk,
    CostSummary,
    EngineState,
    Evaluation,
    JobContext,
    Question,
    ResumeContext,
)
from interview_engine.core.storage_interface import SessionStore
from interview_engine.providers.base import Provider

# Bound on "wait for a chunk, then re-read" rounds inside one next_question call
MAX_READINESS_ROUNDS = 2


class TechnicalInterviewPipeline:
    """Chunked, store-backed technical interview for one session.

    The presentation layer calls `start`, then loops `next_question` ->
    `mark_asked` -> `record_answer` until `next_question` returns None.
    """

    def __init__(
        self,
        store: SessionStore,
        provider: Provider,
        audio: AudioRenderer | None = None,
        config: EngineConfig | None = None,
        generator: QuestionGenerator | None = None,
        grader: AnswerGrader | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.generator = generator or QuestionGenerator(provider)
        self.grader = grader or AnswerGrader(provider)
        self.audio = audio
        self.preprocessor = PreprocessingPipeline(
            store, self.generator, self.grader, audio=audio, chunk_size=self.config.chunk_size
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep
        self.session_id: str | None = None
        self.scheduler: ChunkScheduler | None = None
        self.queue_engine: QueueEngine | None = None
        self.engine_state = EngineState()
        self.current_chunk = 0

    def _attach(self, session_id: str) -> None:
        self.session_id = session_id
        set_trace_id(session_id)
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        self.scheduler = ChunkScheduler(
            self.store,
            session_id,
            self.preprocessor.preprocess_chunk,
            chunk_size=self.config.chunk_size,
            wait_seconds=self.config.chunk_wait_seconds,
            poll_seconds=self.config.chunk_poll_seconds,
            **kwargs,
        )
        self.queue_engine = QueueEngine(self.generator, self.grader, store=self.store, session_id=session_id)
        self.engine_state = EngineState()

    def _require_session(self) -> str:
        if self.session_id is None or self.scheduler is None:
            raise RuntimeError("Interview has not been started")
        return self.session_id

    def start(self, job: JobContext | None, resume: ResumeContext | None, session_id: str | None = None) -> list[Question]:
        """Generate the primary queue and have chunk 0 ready before returning.

        Raises ConfigurationError for missing context and GenerationError when the
        model produced no usable questions; either way the session ends FAILED.
        """
        session = self.store.create_session(session_id, duration_minutes=self.config.duration_minutes)
        self._attach(session.id)
        self.store.set_state(session.id, InterviewState.GENERATING_QUESTIONS)

        with span("interview.generate", component="pipeline", operation="start", session_id=session.id):
            try:
                questions = self.generator.generate(job, resume)
            except ConfigurationError:
                self.store.set_state(session.id, InterviewState.FAILED)
                raise

        if not questions:
            self.store.set_state(session.id, InterviewState.FAILED)
            raise GenerationError("No questions could be generated; try again")

        self.store.set_primary_questions(session.id, questions)
        self.engine_state = self.queue_engine.seed(questions)
        self.scheduler.run_now(0)
        self.current_chunk = 0
        self.store.set_state(session.id, InterviewState.IN_PROGRESS)

        log_event(
            "interview.started",
            component="pipeline",
            session_id=session.id,
            questions=len(questions),
            chunks=chunk_count(len(questions), self.config.chunk_size),
        )
        return questions

    def resume(self, session_id: str) -> None:
        """Reattach to a stored session, e.g. after a process restart."""
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._attach(session_id)
        stored = self.store.get_asked_questions(session_id)
        primary = self.store.get_primary_questions(session_id)
        self.current_chunk = self._resume_chunk(primary, stored)

        snapshot = self.store.load_engine_state(session_id)
        if snapshot is None:
            stored_ids = {q.id for q in stored}
            snapshot = self.queue_engine.seed([q for q in primary if q.id not in stored_ids])
        self.engine_state = snapshot

    def _resume_chunk(self, primary: list[Question], stored: list[Question]) -> int:
        """Chunk the candidate is in: the first unanswered question's, else the last answered one's.

        Read-ahead has usually committed the chunk after it already.
        """
        unanswered = [q for q in stored if not q.is_answered]
        answered = [q for q in stored if q.is_answered]
        anchor = unanswered[0] if unanswered else (answered[-1] if answered else None)
        if anchor is None:
            return 0
        number = chunk_number_for(anchor, primary, stored, self.config.chunk_size)
        return 0 if number is None else number

    def _chunk_of(self, question: Question, primary: list[Question], stored: list[Question]) -> int:
        number = chunk_number_for(question, primary, stored, self.config.chunk_size)
        return self.current_chunk if number is None else number

    def next_question(self) -> Question | None:
        """Next question to present, or None once the interview is over."""
        session_id = self._require_session()
        if self.scheduler.terminated or self.store.is_session_complete(session_id):
            return None

        session = self.store.get_session(session_id)
        if session.is_expired(self._clock()):
            log_event("interview.time_expired", component="pipeline", session_id=session_id)
            self.complete()
            return None

        for _ in range(MAX_READINESS_ROUNDS):
            stored = self.store.get_asked_questions(session_id)
            primary = self.store.get_primary_questions(session_id)
            candidate = next((q for q in stored if not q.is_answered), None)

            if candidate is not None:
                chunk_number = self._chunk_of(candidate, primary, stored)
                if chunk_number > self.current_chunk and not self.scheduler.is_ready(chunk_number):
                    if self.scheduler.wait_for(chunk_number):
                        continue
                self.current_chunk = max(self.current_chunk, chunk_number)
                self.scheduler.request_readahead(self.current_chunk)
                return self._presented(candidate)

            stored_ids = {q.id for q in stored}
            pending = [index for index, q in enumerate(primary) if q.id not in stored_ids]
            if not pending:
                log_event("interview.exhausted", component="pipeline", session_id=session_id)
                self.complete()
                return None

            chunk_number = chunk_number_for_index(pending[0], self.config.chunk_size)
            if not self.scheduler.wait_for(chunk_number):
                return self._present_degraded(primary[pending[0]], chunk_number)

        # Chunk reported ready but its questions are still missing from the store
        stored = self.store.get_asked_questions(session_id)
        candidate = next((q for q in stored if not q.is_answered), None)
        if candidate is not None:
            return self._presented(candidate)
        primary = self.store.get_primary_questions(session_id)
        stored_ids = {q.id for q in stored}
        pending = [index for index, q in enumerate(primary) if q.id not in stored_ids]
        if not pending:
            self.complete()
            return None
        return self._present_degraded(primary[pending[0]], chunk_number_for_index(pending[0], self.config.chunk_size))

    def _present_degraded(self, question: Question, chunk_number: int) -> Question:
        """Present a raw primary question (no audio) after the readiness wait timed out."""
        session_id = self._require_session()
        self.store.add_asked_question(session_id, question)
        self.current_chunk = max(self.current_chunk, chunk_number)
        self.scheduler.request_readahead(self.current_chunk)
        log_event(
            "chunk.degraded_presentation",
            component="pipeline",
            session_id=session_id,
            chunk_number=chunk_number,
            question_id=question.id,
            level=logging.WARNING,
        )
        return self._presented(question)

    def _presented(self, question: Question) -> Question:
        self.engine_state = self.queue_engine.present(self.engine_state, question)
        return question

    def mark_asked(self, question_id: str) -> None:
        """Record that the question's audio started playing."""
        self.store.mark_question_asked(self._require_session(), question_id, at=self._clock())

    def record_answer(self, question_id: str, answer: str) -> Evaluation | None:
        """Grade, persist and route one answer.

        Returns None when grading was skipped (blank answer or no reference
        answer). Works after the deadline so that no answer is lost.
        """
        session_id = self._require_session()
        stored = self.store.get_asked_questions(session_id)
        index = find_index(stored, question_id)
        if index is None:
            raise QuestionNotFoundError(question_id)
        question = stored[index]
        answer = answer or ""

        if is_blank(answer) or is_blank(question.reference_answer):
            decision, removed = self.store.update_answer(session_id, question_id, answer, None)
            log_event(
                "routing.skipped",
                component="pipeline",
                session_id=session_id,
                question_id=question_id,
                blank_answer=is_blank(answer),
                pruned=removed,
            )
            self.engine_state = self.queue_engine.apply_outcome(self.engine_state, question, answer, None, decision)
            return None

        evaluation = self.grader.evaluate(
            question.text, question.reference_answer, answer, source_urls=question.source_urls
        )
        decision, removed = self.store.update_answer(
            session_id, question_id, answer, evaluation.score, evaluation.route_action
        )
        log_event(
            f"routing.{decision.value}",
            component="pipeline",
            session_id=session_id,
            question_id=question_id,
            topic_id=question.topic_id,
            score=evaluation.score,
            route_action=evaluation.route_action,
            degraded=evaluation.degraded,
            pruned=removed,
            answer_preview=mask_text(answer[:40]),
        )

        answered = question.model_copy(
            update={"user_answer": answer, "correctness": evaluation.score, "route_action": evaluation.route_action}
        )
        generated: list[Question] = []
        remediation = None
        if not evaluation.degraded and not self.store.is_session_complete(session_id):
            if decision is RouteDecision.REMEDIATE:
                remediation = self._add_remediation(session_id, answered, answer)
            elif decision is RouteDecision.DEEPEN:
                generated = self._ensure_depth_followups(session_id, answered)

        self.engine_state = self.queue_engine.apply_outcome(
            self.engine_state, answered, answer, evaluation, decision, generated, remediation
        )
        return evaluation

    def _add_remediation(self, session_id: str, question: Question, answer: str) -> Question | None:
        remediation = self.generator.generate_remediation_question(question, answer)
        if remediation is None:
            return None
        reference = self.grader.generate_reference_answer(remediation.text)
        if reference is not None:
            remediation = remediation.model_copy(
                update={"reference_answer": reference.answer, "source_urls": reference.source_urls}
            )
        if self.audio is not None:
            audio_url = self.audio.render(session_id, remediation)
            if audio_url:
                remediation = remediation.model_copy(update={"audio_url": audio_url})
        self.store.add_asked_question(session_id, remediation, insert_after=question.id)
        return remediation

    def _ensure_depth_followups(self, session_id: str, question: Question) -> list[Question]:
        """Store the next depth rung if preprocessing did not already; return the pending rungs."""
        if not question.is_technical or question.difficulty == "hard":
            return []
        stored_ids = {q.id for q in self.store.get_asked_questions(session_id)}
        root_id = depth_root_id(question)
        if question.difficulty is None:
            if depth_followup_id(root_id, "medium") not in stored_ids:
                self.preprocessor.prepare_depth_followups(session_id, question)
        elif depth_followup_id(root_id, "hard") not in stored_ids:
            self.preprocessor.prepare_depth_followups(session_id, question, only=("hard",))

        rung_ids = {depth_followup_id(root_id, "medium"), depth_followup_id(root_id, "hard")}
        return [
            q for q in self.store.get_asked_questions(session_id) if q.id in rung_ids and not q.is_answered
        ]

    def complete(self, purge_audio: bool = False) -> CostSummary:
        """End the interview: no further read-ahead, session marked complete."""
        session_id = self._require_session()
        self.scheduler.terminate()
        self.store.mark_session_complete(session_id)
        if purge_audio and self.audio is not None:
            self.audio.purge(session_id)

        summary = self.cost_summary()
        log_event(
            "interview.completed",
            component="pipeline",
            session_id=session_id,
            total_chunks=summary.total_chunks,
            preprocessed_chunks=summary.preprocessed_chunks,
            skipped_chunks=summary.skipped_chunks,
            questions_answered=summary.questions_answered,
        )
        return summary

    def chunks(self) -> list[Chunk]:
        """Chunks over the interleaved order, each primary slice with its stored follow-ups inlined."""
        session_id = self._require_session()
        primary = self.store.get_primary_questions(session_id)
        stored = self.store.get_asked_questions(session_id)
        primary_ids = {q.id for q in primary}
        stored_by_id = {q.id: q for q in stored}
        ordered = interleave_queues(primary, [q for q in stored if q.id not in primary_ids])

        grouped: dict[int, list[Question]] = {}
        for question in ordered:
            number = chunk_number_for(question, primary, stored, self.config.chunk_size)
            if number is not None:
                grouped.setdefault(number, []).append(stored_by_id.get(question.id, question))

        preprocessed = self.store.get_preprocessed_chunks(session_id)
        return [
            chunk.model_copy(update={"questions": grouped.get(chunk.chunk_number, chunk.questions)})
            for chunk in split_into_chunks(primary, self.config.chunk_size, preprocessed)
        ]

    def cost_summary(self) -> CostSummary:
        """Chunks preprocessed against the total; the difference is work never paid for."""
        session_id = self._require_session()
        chunks = self.chunks()
        stored = self.store.get_asked_questions(session_id)
        return CostSummary(
            total_chunks=len(chunks),
            preprocessed_chunks=sum(1 for chunk in chunks if chunk.preprocessed),
            questions_asked=sum(1 for q in stored if q.asked_at is not None),
            questions_answered=sum(1 for q in stored if q.is_answered),
        )
