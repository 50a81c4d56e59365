from interview_engine.core.constants import DEFAULT_CHUNK_SIZE
from interview_engine.core.models import Chunk, Question


def chunk_count(total: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return (total + chunk_size - 1) // chunk_size


def chunk_number_for_index(index: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return index // chunk_size


def chunk_slice(questions: list[Question], chunk_number: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[Question]:
    start = chunk_number * chunk_size
    return questions[start : start + chunk_size]


def split_into_chunks(
    questions: list[Question], chunk_size: int = DEFAULT_CHUNK_SIZE, preprocessed: set[int] | None = None
) -> list[Chunk]:
    """Fixed-size contiguous chunks; the last one may be smaller."""
    preprocessed = preprocessed or set()
    return [
        Chunk(
            chunk_number=number,
            questions=chunk_slice(questions, number, chunk_size),
            preprocessed=number in preprocessed,
        )
        for number in range(chunk_count(len(questions), chunk_size))
    ]


def root_question_id(question: Question, by_id: dict[str, Question]) -> str:
    """Follow parent links up to the question that started the chain."""
    current = question
    seen = {current.id}
    while current.parent_question_id:
        parent_id = current.parent_question_id
        parent = by_id.get(parent_id)
        if parent is None or parent_id in seen:
            return parent_id
        seen.add(parent_id)
        current = parent
    return current.id


def interleave_queues(primary: list[Question], followups: list[Question]) -> list[Question]:
    """Flatten primary questions with each one's follow-ups inlined right after it.

    Follow-ups keep their relative order within a parent group. Follow-ups whose
    chain does not lead back to a primary question go to the tail.
    """
    by_id = {q.id: q for q in [*primary, *followups]}
    primary_ids = {q.id for q in primary}
    grouped: dict[str, list[Question]] = {q.id: [] for q in primary}
    orphans: list[Question] = []

    for followup in followups:
        if followup.id in primary_ids:
            continue
        root = root_question_id(followup, by_id)
        if root in grouped:
            grouped[root].append(followup)
        else:
            orphans.append(followup)

    flattened: list[Question] = []
    for question in primary:
        flattened.append(question)
        flattened.extend(grouped[question.id])
    flattened.extend(orphans)
    return flattened


def primary_index_of(question: Question, primary_index: dict[str, int], by_id: dict[str, Question]) -> int | None:
    """Primary position of a question, or of the primary question its chain descends from."""
    if question.id in primary_index:
        return primary_index[question.id]
    current = question
    seen = {current.id}
    while current.parent_question_id and current.parent_question_id not in seen:
        parent_id = current.parent_question_id
        if parent_id in primary_index:
            return primary_index[parent_id]
        seen.add(parent_id)
        parent = by_id.get(parent_id)
        if parent is None:
            return None
        current = parent
    return None


def chunk_number_for(
    question: Question,
    primary: list[Question],
    stored: list[Question] | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int | None:
    """Chunk of a stored question: its own primary index, or its root parent's."""
    primary_index = {q.id: index for index, q in enumerate(primary)}
    by_id = {q.id: q for q in (stored or [])}
    index = primary_index_of(question, primary_index, by_id)
    if index is None:
        return None
    return chunk_number_for_index(index, chunk_size)
