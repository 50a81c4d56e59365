"""Routing policy: one decision function shared by live routing and answer persistence.

Both the in-memory queue engine and the session stores call `decide_route` and
`pruned_followup_ids`, so a weak answer prunes exactly the same follow-ups
whichever path records it.
"""

import math
from enum import Enum
from typing import Any

from interview_engine.core.constants import (
    DEPTH_THRESHOLD,
    FALLBACK_SCORE,
    MODEL_DEPTH_THRESHOLD,
    REMEDIATION_THRESHOLD,
)
from interview_engine.core.models import Question, RouteAction

ROUTE_ACTIONS: tuple[str, ...] = ("next_difficulty", "normal_flow", "followup")


class RouteDecision(Enum):
    SKIP = "skip"  # no score: grading was skipped
    REMEDIATE = "remediate"
    DEEPEN = "deepen"
    CONTINUE = "continue"


def sanitize_score(raw: Any) -> int:
    """Clamp a model-reported score to an integer in 0..100."""
    if isinstance(raw, bool) or raw is None:
        return FALLBACK_SCORE
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return FALLBACK_SCORE
    if not math.isfinite(value):
        return FALLBACK_SCORE
    return max(0, min(100, int(round(value))))


def derive_route_action(score: int) -> RouteAction:
    """Route action the grading prompt asks the model to choose for a score."""
    if score >= MODEL_DEPTH_THRESHOLD:
        return "next_difficulty"
    if score <= REMEDIATION_THRESHOLD:
        return "followup"
    return "normal_flow"


def sanitize_route_action(raw: Any, score: int) -> RouteAction:
    if isinstance(raw, str) and raw.strip().lower() in ROUTE_ACTIONS:
        return raw.strip().lower()  # type: ignore[return-value]
    return derive_route_action(score)


def decide_route(score: int | None, route_action: str | None = None) -> RouteDecision:
    """Map a graded answer to a queue mutation.

    Remediation wins over depth, so a "next_difficulty" directive on a near-zero
    score still remediates. A "next_difficulty" directive below the depth
    threshold is reconciled with the score: persistence prunes the follow-ups of
    any answer scored under it, so deepening there would ask what was just pruned.
    """
    if score is None:
        return RouteDecision.SKIP
    if route_action == "followup" or score <= REMEDIATION_THRESHOLD:
        return RouteDecision.REMEDIATE
    if score >= DEPTH_THRESHOLD:
        return RouteDecision.DEEPEN
    return RouteDecision.CONTINUE


def depth_root_id(question: Question) -> str:
    """Id of the base question a depth ladder hangs off."""
    if question.difficulty is not None and question.parent_question_id:
        return question.parent_question_id
    return question.id


def depth_followup_id(root_id: str, difficulty: str) -> str:
    return f"{root_id}_{difficulty}"


def pending_depth_ids(question: Question) -> list[str]:
    """Depth follow-ups that become pointless if this question is answered weakly.

    A base technical question owns both `_medium` and `_hard`; a medium one only
    its `_hard` sibling; hard and non-technical questions own nothing.
    """
    if not question.is_technical:
        return []
    if question.difficulty is None:
        return [depth_followup_id(question.id, "medium"), depth_followup_id(question.id, "hard")]
    if question.difficulty == "medium":
        return [depth_followup_id(depth_root_id(question), "hard")]
    return []


def pruned_followup_ids(question: Question, decision: RouteDecision) -> list[str]:
    # ungraded answers leave the queues alone
    if decision in (RouteDecision.DEEPEN, RouteDecision.SKIP):
        return []
    return pending_depth_ids(question)
