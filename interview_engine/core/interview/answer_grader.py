import logging
from typing import Any

from interview_engine.core.constants import FALLBACK_SCORE, NO_REFERENCE_ANSWER, UNABLE_TO_EVALUATE
from interview_engine.core.logging import log_event, mask_text
from interview_engine.core.models import Evaluation, ReferenceAnswer
from interview_engine.core.prompts import SYSTEM_INSTRUCTIONS, evaluate_answer_prompt, reference_answer_prompt
from interview_engine.providers.base import Provider
from interview_engine.providers.exceptions import handle_provider_operation, parse_json_response

from .routing import sanitize_route_action, sanitize_score


def _clean_urls(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [url.strip() for url in raw if isinstance(url, str) and url.strip()]


def fallback_evaluation(reference_answer: str | None = None, source_urls: list[str] | None = None) -> Evaluation:
    return Evaluation(
        score=FALLBACK_SCORE,
        route_action="normal_flow",
        reason=UNABLE_TO_EVALUATE,
        source_urls=source_urls or [],
        reference_answer=reference_answer,
        degraded=True,
    )


def is_blank(text: str | None) -> bool:
    return text is None or not text.strip()


class AnswerGrader:
    """Reference answers and scoring. Never raises for model failures."""

    def __init__(self, provider: Provider):
        self.provider = provider

    def _call(self, operation: str, prompt: str, build, fallback):
        def _do_operation():
            content = self.provider.complete(prompt, system=SYSTEM_INSTRUCTIONS["grader"])
            data = parse_json_response(
                content,
                "object",
                {"operation": operation, "provider": self.provider.vendor, "model": self.provider.model},
            )
            return build(data)

        return handle_provider_operation(
            operation=operation,
            provider=self.provider.vendor,
            model=self.provider.model,
            operation_func=_do_operation,
            fallback_factory=fallback,
        )

    def generate_reference_answer(self, question_text: str) -> ReferenceAnswer | None:
        """Reference answer with 2-3 citations, or None on any failure."""

        def _build(data: dict) -> ReferenceAnswer | None:
            answer = data.get("ideal_answer") or data.get("answer")
            if not isinstance(answer, str) or not answer.strip():
                return None
            return ReferenceAnswer(answer=answer.strip(), source_urls=_clean_urls(data.get("source_urls")))

        return self._call("generate_reference_answer", reference_answer_prompt(question_text), _build, lambda: None)

    def evaluate(
        self,
        question_text: str,
        reference_answer: str | None,
        candidate_answer: str,
        source_urls: list[str] | None = None,
    ) -> Evaluation:
        """Score a candidate answer from 0 to 100 and pick a route action.

        A missing reference answer is generated first; if that fails too the
        grading runs against a placeholder instead of blocking.
        """
        source_urls = list(source_urls or [])
        if is_blank(reference_answer):
            generated = self.generate_reference_answer(question_text)
            if generated is not None:
                reference_answer = generated.answer
                source_urls = generated.source_urls
            else:
                reference_answer = None

        prompt_reference = reference_answer or NO_REFERENCE_ANSWER

        def _build(data: dict) -> Evaluation:
            score = sanitize_score(data.get("correctness", data.get("score")))
            reason = data.get("reason")
            return Evaluation(
                score=score,
                route_action=sanitize_route_action(data.get("route_action"), score),
                reason=reason.strip() if isinstance(reason, str) and reason.strip() else "No reason given",
                source_urls=source_urls,
                reference_answer=reference_answer,
            )

        evaluation = self._call(
            "evaluate_answer",
            evaluate_answer_prompt(question_text, prompt_reference, candidate_answer),
            _build,
            lambda: fallback_evaluation(reference_answer, source_urls),
        )
        log_event(
            "grader.evaluated",
            component="grader",
            operation="evaluate",
            score=evaluation.score,
            route_action=evaluation.route_action,
            answer_preview=mask_text(candidate_answer[:40]),
            degraded=evaluation.degraded,
            level=logging.WARNING if evaluation.degraded else logging.INFO,
        )
        return evaluation
