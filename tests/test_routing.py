import pytest

from interview_engine.core.interview.routing import (
    RouteDecision,
    decide_route,
    depth_root_id,
    pending_depth_ids,
    pruned_followup_ids,
    sanitize_route_action,
    sanitize_score,
)
from tests.mocks.factories import depth_pair, make_question


class TestSanitizeScore:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (85, 85),
            ("72", 72),
            (33.6, 34),
            (-5, 0),
            (140, 100),
            (None, 50),
            ("high", 50),
            (True, 50),
            (float("nan"), 50),
            (float("inf"), 50),
        ],
    )
    def test_clamps_and_falls_back(self, raw, expected):
        assert sanitize_score(raw) == expected


class TestSanitizeRouteAction:
    def test_keeps_known_action(self):
        assert sanitize_route_action(" Next_Difficulty ", 20) == "next_difficulty"

    @pytest.mark.parametrize("score,expected", [(95, "next_difficulty"), (80, "next_difficulty"), (50, "normal_flow"), (10, "followup"), (0, "followup")])
    def test_derives_missing_action_from_score(self, score, expected):
        assert sanitize_route_action(None, score) == expected
        assert sanitize_route_action("jump", score) == expected


class TestDecideRoute:
    @pytest.mark.parametrize(
        "score,action,expected",
        [
            (None, None, RouteDecision.SKIP),
            (5, "followup", RouteDecision.REMEDIATE),
            (10, "normal_flow", RouteDecision.REMEDIATE),
            (60, "followup", RouteDecision.REMEDIATE),
            (3, "next_difficulty", RouteDecision.REMEDIATE),
            (50, "normal_flow", RouteDecision.DEEPEN),
            (85, "next_difficulty", RouteDecision.DEEPEN),
            (30, "next_difficulty", RouteDecision.CONTINUE),
            (49, "next_difficulty", RouteDecision.CONTINUE),
            (11, "normal_flow", RouteDecision.CONTINUE),
            (49, None, RouteDecision.CONTINUE),
        ],
    )
    def test_decision_table(self, score, action, expected):
        assert decide_route(score, action) is expected


class TestDepthIds:
    def test_base_question_owns_both_rungs(self):
        base = make_question("q1", topic_id="topic_a")

        assert pending_depth_ids(base) == ["q1_medium", "q1_hard"]

    def test_medium_question_owns_hard_sibling(self):
        medium, hard = depth_pair(make_question("q1", topic_id="topic_a"))

        assert depth_root_id(medium) == "q1"
        assert pending_depth_ids(medium) == ["q1_hard"]
        assert pending_depth_ids(hard) == []

    def test_non_technical_owns_nothing(self):
        assert pending_depth_ids(make_question("n1", category="non-technical")) == []

    def test_deepen_prunes_nothing(self):
        base = make_question("q1")

        assert pruned_followup_ids(base, RouteDecision.DEEPEN) == []
        assert pruned_followup_ids(base, RouteDecision.CONTINUE) == ["q1_medium", "q1_hard"]
        assert pruned_followup_ids(base, RouteDecision.REMEDIATE) == ["q1_medium", "q1_hard"]

    def test_skipped_answer_prunes_nothing(self):
        base = make_question("q1")
        medium, _ = depth_pair(base)

        assert pruned_followup_ids(base, RouteDecision.SKIP) == []
        assert pruned_followup_ids(medium, RouteDecision.SKIP) == []
