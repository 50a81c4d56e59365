import math
import random

from interview_engine.core.constants import NON_TECHNICAL_QUOTA
from interview_engine.core.models import Question

from .ids import generate_id

INTRO_PATTERNS = ("tell me about yourself", "introduce yourself")
OUTRO_PATTERNS = ("any questions for", "anything else")

DEFAULT_INTRO_TEXT = "Tell me about yourself and your background."
DEFAULT_OUTRO_TEXT = "Do you have any questions for us, or is there anything else you'd like to add?"


class PatternClassifier:
    """Substring classifier for the icebreaker and closing questions.

    Swap in a different classifier to change detection; the fallback to a
    synthesized question when nothing matches stays in `randomize_primary_queue`.
    """

    def __init__(self, intro_patterns: tuple[str, ...] = INTRO_PATTERNS, outro_patterns: tuple[str, ...] = OUTRO_PATTERNS):
        self.intro_patterns = intro_patterns
        self.outro_patterns = outro_patterns

    def is_intro(self, question: Question) -> bool:
        text = question.text.lower()
        return any(pattern in text for pattern in self.intro_patterns)

    def is_outro(self, question: Question) -> bool:
        text = question.text.lower()
        return any(pattern in text for pattern in self.outro_patterns)


def default_intro() -> Question:
    return Question(id=generate_id(), text=DEFAULT_INTRO_TEXT, category="non-technical")


def default_outro() -> Question:
    return Question(id=generate_id(), text=DEFAULT_OUTRO_TEXT, category="non-technical")


def max_middle_non_technical(technical_count: int, non_technical_count: int, quota: float = NON_TECHNICAL_QUOTA) -> int:
    return math.floor((technical_count + non_technical_count) * quota)


def randomize_primary_queue(
    questions: list[Question],
    classifier: PatternClassifier | None = None,
    rng: random.Random | None = None,
    quota: float = NON_TECHNICAL_QUOTA,
) -> list[Question]:
    """Order the primary queue as icebreaker, shuffled body, closer.

    The body holds every technical question plus at most `quota` of the body
    size in non-technical questions; the surplus non-technical ones are dropped.
    """
    if not questions:
        return []

    classifier = classifier or PatternClassifier()
    rng = rng or random.Random()

    technical = [q for q in questions if q.is_technical]
    non_technical = [q for q in questions if not q.is_technical]

    intro = next((q for q in non_technical if classifier.is_intro(q)), None)
    if intro is None:
        intro = non_technical[0] if non_technical else default_intro()

    outro_candidates = [q for q in non_technical if q is not intro]
    outro = next((q for q in reversed(outro_candidates) if classifier.is_outro(q)), None)
    if outro is None:
        outro = outro_candidates[-1] if outro_candidates else default_outro()

    remaining = [q for q in non_technical if q is not intro and q is not outro]
    limited = remaining[: max_middle_non_technical(len(technical), len(remaining), quota)]

    middle = technical + limited
    rng.shuffle(middle)

    return [intro, *middle, outro]
