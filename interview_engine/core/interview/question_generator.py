import logging
import random
from typing import Any

from interview_engine.core.exceptions import ConfigurationError
from interview_engine.core.logging import log_event, preview
from interview_engine.core.models import JobContext, Question, ResumeContext
from interview_engine.core.prompts import (
    SYSTEM_INSTRUCTIONS,
    depth_questions_prompt,
    primary_questions_prompt,
    remediation_question_prompt,
)
from interview_engine.providers.base import Provider
from interview_engine.providers.exceptions import handle_provider_operation, parse_json_response

from .ids import ensure_ids, generate_id
from .question_queue import PatternClassifier, randomize_primary_queue
from .routing import depth_followup_id, depth_root_id

DEPTH_LEVELS = ("medium", "hard")


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def question_from_item(item: Any) -> Question | None:
    """Build a primary question from one generated item, or None if it has no text."""
    if not isinstance(item, dict):
        return None
    text = _text(item.get("question") or item.get("text"))
    if not text:
        return None
    category = "technical" if _text(item.get("category")).lower() == "technical" else "non-technical"
    answer = _text(item.get("answer"))
    return Question(
        text=text,
        category=category,
        reference_answer=answer if category == "technical" and answer else None,
        queue_type="Q1",
    )


class QuestionGenerator:
    """Produces the primary question list and the follow-ups routing asks for."""

    def __init__(
        self,
        provider: Provider,
        classifier: PatternClassifier | None = None,
        rng: random.Random | None = None,
    ):
        self.provider = provider
        self.classifier = classifier or PatternClassifier()
        self.rng = rng or random.Random()

    def _call(self, operation: str, prompt: str, expect: str, fallback):
        def _do_operation():
            content = self.provider.complete(prompt, system=SYSTEM_INSTRUCTIONS["interviewer"])
            return parse_json_response(
                content,
                expect,
                {"operation": operation, "provider": self.provider.vendor, "model": self.provider.model},
            )

        return handle_provider_operation(
            operation=operation,
            provider=self.provider.vendor,
            model=self.provider.model,
            operation_func=_do_operation,
            fallback_factory=fallback,
        )

    def generate(self, job: JobContext | None, resume: ResumeContext | None) -> list[Question]:
        """Generate, normalize and order the primary queue.

        Raises ConfigurationError when job or resume context is missing. An
        unparseable model reply yields an empty list.
        """
        missing = []
        if job is None or job.is_empty():
            missing.append("job context")
        if resume is None or resume.is_empty():
            missing.append("resume context")
        if missing:
            raise ConfigurationError(missing)

        items = self._call("generate_questions", primary_questions_prompt(job, resume), "array", list)
        questions = [q for q in (question_from_item(item) for item in items) if q is not None]
        if not questions:
            log_event(
                "generator.empty_result",
                component="generator",
                operation="generate_questions",
                raw_items=len(items),
                level=logging.WARNING,
            )
            return []

        ordered = randomize_primary_queue(ensure_ids(questions), classifier=self.classifier, rng=self.rng)
        log_event(
            "generator.questions_generated",
            component="generator",
            operation="generate_questions",
            generated=len(questions),
            kept=len(ordered),
            technical=sum(1 for q in ordered if q.is_technical),
        )
        return ordered

    def generate_depth_questions(self, parent: Question) -> list[Question]:
        """Medium and hard follow-ups for a well-answered technical question.

        Ids are derived from the base question (`<base>_medium`, `<base>_hard`) so
        the pruning rule can find them without a lookup.
        """
        correct_answer = parent.reference_answer or ""
        items = self._call(
            "generate_depth_questions", depth_questions_prompt(parent.text, correct_answer), "array", list
        )

        root_id = depth_root_id(parent)
        by_level: dict[str, dict] = {}
        unlabeled: list[dict] = []
        for item in items:
            if not isinstance(item, dict) or not _text(item.get("question")):
                continue
            level = _text(item.get("difficulty")).lower()
            if level in DEPTH_LEVELS and level not in by_level:
                by_level[level] = item
            else:
                unlabeled.append(item)
        for level in DEPTH_LEVELS:
            if level not in by_level and unlabeled:
                by_level[level] = unlabeled.pop(0)

        followups = []
        for level in DEPTH_LEVELS:
            item = by_level.get(level)
            if item is None:
                continue
            answer = _text(item.get("answer"))
            followups.append(
                Question(
                    id=depth_followup_id(root_id, level),
                    text=_text(item.get("question")),
                    category="technical",
                    difficulty=level,
                    reference_answer=answer or None,
                    topic_id=parent.topic_id,
                    parent_question_id=root_id,
                    queue_type="Q2",
                )
            )

        log_event(
            "generator.depth_generated",
            component="generator",
            operation="generate_depth_questions",
            parent_id=parent.id,
            topic_id=parent.topic_id,
            generated=len(followups),
        )
        return followups

    def generate_remediation_question(self, question: Question, wrong_answer: str) -> Question | None:
        """One clarifying question after a very poor answer, or None on failure."""
        data = self._call(
            "generate_remediation_question",
            remediation_question_prompt(question.text, wrong_answer),
            "object",
            dict,
        )
        text = _text(data.get("question")) if isinstance(data, dict) else ""
        if not text:
            return None

        followup = Question(
            id=generate_id(),
            text=text,
            category="followup",
            topic_id=question.topic_id,
            parent_question_id=question.id,
            queue_type="Q3",
        )
        log_event(
            "generator.remediation_generated",
            component="generator",
            operation="generate_remediation_question",
            parent_id=question.id,
            topic_id=question.topic_id,
            question_preview=preview(text),
        )
        return followup
