"""Pure operations on a session's stored asked-question list.

Every function returns a new list; the stores apply them inside their per-session
lock so preprocessing and answer recording never lose each other's writes.
"""

from datetime import UTC, datetime

from interview_engine.core.exceptions import QuestionNotFoundError
from interview_engine.core.models import Question, RouteAction

from .routing import RouteDecision, decide_route, pruned_followup_ids, sanitize_route_action

# Fields owned by the answer-recording path; a re-persisted question never clears them
_ANSWER_FIELDS = ("user_answer", "correctness", "route_action", "asked_at")


def find_index(questions: list[Question], question_id: str) -> int | None:
    for index, question in enumerate(questions):
        if question.id == question_id:
            return index
    return None


def merge_question(existing: Question, incoming: Question) -> Question:
    """Overlay incoming fields on an existing entry without dropping recorded data."""
    update = {}
    for field, value in incoming.model_dump().items():
        if value is None:
            continue
        if field == "source_urls" and not value:
            continue
        if field in _ANSWER_FIELDS and getattr(existing, field) is not None:
            continue
        update[field] = value
    return existing.model_copy(update=update)


def add_or_merge(questions: list[Question], question: Question, insert_after: str | None = None) -> list[Question]:
    """Merge by id if present; otherwise splice after `insert_after`, or append."""
    result = list(questions)
    index = find_index(result, question.id)
    if index is not None:
        result[index] = merge_question(result[index], question)
        return result

    anchor = find_index(result, insert_after) if insert_after else None
    if anchor is None:
        result.append(question)
    else:
        result.insert(anchor + 1, question)
    return result


def mark_asked(questions: list[Question], question_id: str, at: datetime | None = None) -> list[Question]:
    index = find_index(questions, question_id)
    if index is None:
        raise QuestionNotFoundError(question_id)
    result = list(questions)
    result[index] = result[index].model_copy(update={"asked_at": at or datetime.now(UTC)})
    return result


def apply_answer(
    questions: list[Question],
    question_id: str,
    user_answer: str,
    correctness: int | None,
    route_action: RouteAction | None = None,
) -> tuple[list[Question], RouteDecision, list[str]]:
    """Record an answer and prune the follow-ups the routing decision rules out.

    Returns the new list, the decision, and the ids that were removed.
    """
    index = find_index(questions, question_id)
    if index is None:
        raise QuestionNotFoundError(question_id)

    if correctness is not None and route_action is None:
        route_action = sanitize_route_action(None, correctness)

    answered = questions[index]
    update = {"user_answer": user_answer, "correctness": correctness, "route_action": route_action}
    if answered.asked_at is None:
        update["asked_at"] = datetime.now(UTC)
    answered = answered.model_copy(update=update)

    decision = decide_route(correctness, route_action)
    doomed = set(pruned_followup_ids(answered, decision))

    result: list[Question] = []
    removed: list[str] = []
    for position, question in enumerate(questions):
        if position == index:
            result.append(answered)
        elif question.id in doomed and question.user_answer is None:
            removed.append(question.id)
        else:
            result.append(question)
    return result, decision, removed


def remove_question(questions: list[Question], question_id: str) -> list[Question]:
    return [q for q in questions if q.id != question_id]


def sort_by_asked_at(questions: list[Question]) -> list[Question]:
    """Asked questions in ask order, then never-asked ones in stored order."""
    asked = [q for q in questions if q.asked_at is not None]
    pending = [q for q in questions if q.asked_at is None]
    asked.sort(key=lambda q: _as_utc(q.asked_at))
    return asked + pending


def _as_utc(value: datetime) -> datetime:
    # SQLite round-trips drop tzinfo
    return value if value.tzinfo else value.replace(tzinfo=UTC)
