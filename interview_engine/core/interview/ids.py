import re
import secrets
import string
import time

from interview_engine.core.constants import TOPIC_PREFIX_LENGTH
from interview_engine.core.models import Question

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_id() -> str:
    """Question id: millisecond timestamp plus a random suffix, both base36."""
    return f"q_{_to_base36(int(time.time() * 1000))}_{_random_suffix(8)}"


def generate_topic_id(text: str) -> str:
    """Topic id derived from the first characters of the question text.

    Uniqueness is best-effort: two questions sharing a prefix only stay apart
    through the random suffix.
    """
    prefix = re.sub(r"\s+", "_", text[:TOPIC_PREFIX_LENGTH]).lower()
    return f"topic_{prefix}_{_random_suffix(4)}"


def ensure_ids(questions: list[Question]) -> list[Question]:
    """Assign missing ids, and missing topic ids for technical questions."""
    result = []
    for question in questions:
        update = {}
        if not question.id:
            update["id"] = generate_id()
        if question.is_technical and not question.topic_id:
            update["topic_id"] = generate_topic_id(question.text)
        result.append(question.model_copy(update=update) if update else question)
    return result
