from interview_engine.core.models import Question


def make_question(
    question_id: str,
    text: str | None = None,
    category: str = "technical",
    **fields,
) -> Question:
    return Question(id=question_id, text=text or f"Question {question_id}?", category=category, **fields)


def depth_pair(root: Question) -> tuple[Question, Question]:
    """Stored medium/hard follow-ups of a base technical question."""
    medium = make_question(
        f"{root.id}_medium",
        difficulty="medium",
        topic_id=root.topic_id,
        parent_question_id=root.id,
        queue_type="Q2",
        reference_answer="Medium reference",
    )
    hard = make_question(
        f"{root.id}_hard",
        difficulty="hard",
        topic_id=root.topic_id,
        parent_question_id=root.id,
        queue_type="Q2",
        reference_answer="Hard reference",
    )
    return medium, hard
