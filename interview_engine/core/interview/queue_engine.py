"""Adaptive three-queue engine.

State lives in an explicit `EngineState`; the module-level transition functions
never mutate their input and return a new state. `QueueEngine` makes the model
calls a transition needs and persists a snapshot after every transition.
"""

import logging

from interview_engine.core.logging import log_event, preview, span
from interview_engine.core.models import EngineState, Evaluation, Question
from interview_engine.core.storage_interface import SessionStore

from .answer_grader import AnswerGrader, is_blank
from .question_generator import QuestionGenerator
from .routing import RouteDecision, decide_route, depth_followup_id, depth_root_id, pruned_followup_ids


def seed_state(questions: list[Question]) -> EngineState:
    return EngineState(primary=[q.model_copy(update={"queue_type": "Q1"}) for q in questions])


def take_next(state: EngineState) -> tuple[EngineState, Question | None]:
    """Pop the next question: pending remediation first, then primary."""
    new_state = state.model_copy(deep=True)
    if new_state.remediation:
        question = new_state.remediation.pop(0)
    elif new_state.primary:
        question = new_state.primary.pop(0)
    else:
        question = None
    new_state.current = question
    if question is not None:
        new_state.history.append(question)
    return new_state, question


def present_question(state: EngineState, question: Question) -> EngineState:
    """Make a question current however it was chosen, dropping it from the queue holding it."""
    new_state = state.model_copy(deep=True)
    new_state.primary = [q for q in new_state.primary if q.id != question.id]
    new_state.depth = [q for q in new_state.depth if q.id != question.id]
    new_state.remediation = [q for q in new_state.remediation if q.id != question.id]
    new_state.current = question
    if all(q.id != question.id for q in new_state.history):
        new_state.history.append(question)
    return new_state


def record_result(
    state: EngineState, question_id: str, answer: str, evaluation: Evaluation | None
) -> EngineState:
    new_state = state.model_copy(deep=True)
    update = {"user_answer": answer}
    if evaluation is not None:
        update.update(
            correctness=evaluation.score,
            route_action=evaluation.route_action,
            reference_answer=evaluation.reference_answer,
            source_urls=evaluation.source_urls,
        )
    new_state.history = [q.model_copy(update=update) if q.id == question_id else q for q in new_state.history]
    if new_state.current is not None and new_state.current.id == question_id:
        new_state.current = new_state.current.model_copy(update=update)
    return new_state


def _drop(questions: list[Question], predicate) -> tuple[list[Question], list[str]]:
    kept, dropped = [], []
    for question in questions:
        (dropped if predicate(question) else kept).append(question)
    return kept, [q.id for q in dropped]


def purge_topic_depth(state: EngineState, topic_id: str | None) -> tuple[EngineState, list[str]]:
    """Remove every pending depth question of a topic, including promoted ones."""
    new_state = state.model_copy(deep=True)
    if topic_id is None:
        return new_state, []

    def is_depth_of_topic(q: Question) -> bool:
        return q.queue_type == "Q2" and q.topic_id == topic_id

    new_state.depth, from_depth = _drop(new_state.depth, is_depth_of_topic)
    new_state.primary, from_primary = _drop(new_state.primary, is_depth_of_topic)
    return new_state, from_depth + from_primary


def prune_ids(state: EngineState, ids: list[str]) -> tuple[EngineState, list[str]]:
    new_state = state.model_copy(deep=True)
    if not ids:
        return new_state, []
    doomed = set(ids)
    new_state.depth, from_depth = _drop(new_state.depth, lambda q: q.id in doomed)
    new_state.primary, from_primary = _drop(new_state.primary, lambda q: q.id in doomed and q.queue_type == "Q2")
    return new_state, from_depth + from_primary


def _promote(state: EngineState, question_id: str) -> EngineState:
    """Move a depth question to the front of primary for immediate asking."""
    for index, question in enumerate(state.depth):
        if question.id == question_id:
            state.depth.pop(index)
            state.primary.insert(0, question)
            break
    return state


def pending_hard_sibling(state: EngineState, question: Question) -> Question | None:
    hard_id = depth_followup_id(depth_root_id(question), "hard")
    return next((q for q in state.depth if q.id == hard_id), None)


def needs_depth_generation(state: EngineState, question: Question) -> bool:
    if not question.is_technical:
        return False
    if question.difficulty is None:
        return True
    if question.difficulty == "medium":
        return pending_hard_sibling(state, question) is None
    return False


def apply_deepen(state: EngineState, question: Question, generated: list[Question]) -> EngineState:
    """Queue depth follow-ups and promote the next rung of the ladder."""
    new_state = state.model_copy(deep=True)
    if not question.is_technical or question.difficulty == "hard":
        return new_state

    if question.difficulty is None:
        known = {q.id for q in new_state.depth} | {q.id for q in new_state.primary}
        new_state.depth.extend(q for q in generated if q.id not in known)
        return _promote(new_state, depth_followup_id(question.id, "medium"))

    # medium: promote the pending hard sibling, generating one only if it is missing
    hard = pending_hard_sibling(new_state, question)
    if hard is None:
        hard = next((q for q in generated if q.difficulty == "hard"), None)
        if hard is None:
            return new_state
        new_state.depth.append(hard)
    return _promote(new_state, hard.id)


def apply_remediation(state: EngineState, question: Question, remediation: Question | None) -> EngineState:
    new_state, _ = purge_topic_depth(state, question.topic_id)
    if remediation is not None:
        new_state.remediation.append(remediation)
    return new_state


def apply_route(
    state: EngineState,
    question: Question,
    decision: RouteDecision,
    generated: list[Question] | None = None,
    remediation: Question | None = None,
) -> EngineState:
    """Apply one routing decision to the queues."""
    if decision is RouteDecision.REMEDIATE:
        new_state = apply_remediation(state, question, remediation)
        new_state, _ = prune_ids(new_state, pruned_followup_ids(question, decision))
        return new_state
    if decision is RouteDecision.DEEPEN:
        return apply_deepen(state, question, generated or [])
    new_state, _ = prune_ids(state, pruned_followup_ids(question, decision))
    return new_state


class QueueEngine:
    """Drives the queues for one session; holds no queue state of its own."""

    def __init__(
        self,
        generator: QuestionGenerator,
        grader: AnswerGrader,
        store: SessionStore | None = None,
        session_id: str | None = None,
    ):
        self.generator = generator
        self.grader = grader
        self.store = store
        self.session_id = session_id

    def _persist(self, state: EngineState) -> EngineState:
        if self.store is not None and self.session_id is not None:
            self.store.save_engine_state(self.session_id, state)
        return state

    def seed(self, questions: list[Question]) -> EngineState:
        return self._persist(seed_state(questions))

    def ask_next(self, state: EngineState) -> tuple[EngineState, Question | None]:
        new_state, question = take_next(state)
        log_event(
            "engine.next_question",
            component="engine",
            operation="ask_next",
            session_id=self.session_id,
            question_id=question.id if question else None,
            queue_type=question.queue_type if question else None,
            remaining_primary=len(new_state.primary),
            remaining_remediation=len(new_state.remediation),
        )
        return self._persist(new_state), question

    def record_answer(self, state: EngineState, question_id: str, answer: str) -> tuple[EngineState, Evaluation | None]:
        """Grade an answer and apply the routing rules.

        Blank answers and questions without a reference answer are recorded
        ungraded with no routing.
        """
        question = next((q for q in state.history if q.id == question_id), None)
        if question is None:
            raise KeyError(f"Question {question_id} has not been asked")

        if is_blank(answer) or is_blank(question.reference_answer):
            log_event(
                "routing.skipped",
                component="engine",
                operation="record_answer",
                session_id=self.session_id,
                question_id=question_id,
                blank_answer=is_blank(answer),
            )
            return self._persist(record_result(state, question_id, answer, None)), None

        with span("engine.route", component="engine", operation="record_answer", question_id=question_id):
            try:
                evaluation = self.grader.evaluate(
                    question.text, question.reference_answer, answer, source_urls=question.source_urls
                )
            except Exception as e:  # noqa: BLE001 : grading must not halt the interview
                log_event(
                    "routing.grading_failed",
                    component="engine",
                    operation="record_answer",
                    question_id=question_id,
                    error_type=type(e).__name__,
                    error_msg=str(e),
                    level=logging.WARNING,
                )
                return self._persist(record_result(state, question_id, answer, None)), None

            new_state = record_result(state, question_id, answer, evaluation)
            if evaluation.degraded:
                # fallback score: advance without touching the queues
                return self._persist(new_state), evaluation

            answered = next(q for q in new_state.history if q.id == question_id)
            decision = decide_route(evaluation.score, evaluation.route_action)

            generated: list[Question] = []
            remediation = None
            if decision is RouteDecision.REMEDIATE:
                remediation = self.generator.generate_remediation_question(answered, answer)
            elif decision is RouteDecision.DEEPEN and needs_depth_generation(new_state, answered):
                generated = self.generator.generate_depth_questions(answered)

            new_state = apply_route(new_state, answered, decision, generated, remediation)

        log_event(
            f"routing.{decision.value}",
            component="engine",
            operation="record_answer",
            session_id=self.session_id,
            question_id=question_id,
            topic_id=answered.topic_id,
            score=evaluation.score,
            route_action=evaluation.route_action,
            question_preview=preview(answered.text),
        )
        return self._persist(new_state), evaluation

    def present(self, state: EngineState, question: Question) -> EngineState:
        """Mirror a question chosen by the caller, e.g. from the stored asked list."""
        return self._persist(present_question(state, question))

    def apply_outcome(
        self,
        state: EngineState,
        question: Question,
        answer: str,
        evaluation: Evaluation | None,
        decision: RouteDecision,
        generated: list[Question] | None = None,
        remediation: Question | None = None,
    ) -> EngineState:
        """Mirror an answer the caller already graded, persisted and acted on.

        `generated` holds the depth follow-ups and `remediation` the remediation
        question the caller stored; neither is requested from the model here.
        """
        new_state = record_result(state, question.id, answer, evaluation)
        if evaluation is None or evaluation.degraded:
            return self._persist(new_state)
        return self._persist(apply_route(new_state, question, decision, generated, remediation))
