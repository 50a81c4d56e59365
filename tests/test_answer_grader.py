from interview_engine.core.constants import NO_REFERENCE_ANSWER
from interview_engine.core.interview.answer_grader import AnswerGrader, fallback_evaluation, is_blank
from tests.mocks.mock_provider import ScriptedProvider


class TestReferenceAnswer:
    def test_returns_answer_and_sources(self):
        provider = ScriptedProvider(
            {
                "reference_answer": {
                    "ideal_answer": "  A closure captures variables from its enclosing scope. ",
                    "source_urls": ["https://developer.mozilla.org/closures", "", 42],
                }
            }
        )

        reference = AnswerGrader(provider).generate_reference_answer("What is a closure?")

        assert reference.answer == "A closure captures variables from its enclosing scope."
        assert reference.source_urls == ["https://developer.mozilla.org/closures"]

    def test_accepts_json_wrapped_in_prose(self):
        provider = ScriptedProvider(
            {"reference_answer": 'Sure! Here it is:\n```json\n{"ideal_answer": "Use {braces}", "source_urls": []}\n```'}
        )

        reference = AnswerGrader(provider).generate_reference_answer("How do dict literals look?")

        assert reference.answer == "Use {braces}"

    def test_none_on_unparseable_reply(self):
        provider = ScriptedProvider({"reference_answer": "I cannot help with that."})

        assert AnswerGrader(provider).generate_reference_answer("What is a closure?") is None

    def test_none_on_provider_failure(self):
        provider = ScriptedProvider({"reference_answer": ConnectionError("network down")})

        assert AnswerGrader(provider).generate_reference_answer("What is a closure?") is None

    def test_none_on_empty_answer(self):
        provider = ScriptedProvider({"reference_answer": {"ideal_answer": "   ", "source_urls": []}})

        assert AnswerGrader(provider).generate_reference_answer("What is a closure?") is None


class TestEvaluate:
    def test_wrong_answer_scores_low_and_routes_to_followup(self):
        provider = ScriptedProvider(
            {"evaluate": {"correctness": 5, "reason": "Does not answer the question", "route_action": "followup"}}
        )

        evaluation = AnswerGrader(provider).evaluate("What is a closure?", "A closure captures...", "I don't know")

        assert evaluation.score <= 10
        assert evaluation.route_action == "followup"
        assert evaluation.degraded is False
        assert evaluation.reference_answer == "A closure captures..."

    def test_prompt_carries_question_reference_and_answer(self):
        provider = ScriptedProvider({"evaluate": {"correctness": 90, "reason": "ok", "route_action": "next_difficulty"}})

        AnswerGrader(provider).evaluate("What is a closure?", "Reference text", "Candidate text")

        prompt = provider.calls_for("evaluate")[0]
        assert "Question: What is a closure?" in prompt
        assert "Ideal Answer: Reference text" in prompt
        assert "Candidate's Answer: Candidate text" in prompt

    def test_out_of_range_score_is_clamped_and_action_derived(self):
        provider = ScriptedProvider({"evaluate": {"correctness": 150, "reason": "great", "route_action": "promote"}})

        evaluation = AnswerGrader(provider).evaluate("Q?", "ref", "answer")

        assert evaluation.score == 100
        assert evaluation.route_action == "next_difficulty"

    def test_missing_reference_is_generated_first(self):
        provider = ScriptedProvider(
            {
                "reference_answer": {"ideal_answer": "Generated reference", "source_urls": ["https://docs.python.org"]},
                "evaluate": {"correctness": 70, "reason": "fine", "route_action": "normal_flow"},
            }
        )

        evaluation = AnswerGrader(provider).evaluate("What is the GIL?", None, "A lock")

        assert evaluation.reference_answer == "Generated reference"
        assert evaluation.source_urls == ["https://docs.python.org"]
        assert "Ideal Answer: Generated reference" in provider.calls_for("evaluate")[0]

    def test_grades_against_placeholder_when_reference_generation_fails(self):
        provider = ScriptedProvider(
            {
                "reference_answer": "not json",
                "evaluate": {"correctness": 40, "reason": "partial", "route_action": "normal_flow"},
            }
        )

        evaluation = AnswerGrader(provider).evaluate("What is the GIL?", "  ", "A lock")

        assert evaluation.score == 40
        assert evaluation.reference_answer is None
        assert f"Ideal Answer: {NO_REFERENCE_ANSWER}" in provider.calls_for("evaluate")[0]

    def test_provider_always_failing_returns_fallback(self):
        provider = ScriptedProvider(
            {
                "reference_answer": RuntimeError("model offline"),
                "evaluate": RuntimeError("model offline"),
            }
        )

        evaluation = AnswerGrader(provider).evaluate("What is a closure?", None, "Some answer")

        assert evaluation.score == 50
        assert evaluation.route_action == "normal_flow"
        assert evaluation.reason == "Unable to evaluate"
        assert evaluation.degraded is True

    def test_unparseable_grading_reply_returns_fallback(self):
        provider = ScriptedProvider({"evaluate": "The answer is pretty good, maybe 70%."})

        evaluation = AnswerGrader(provider).evaluate("Q?", "ref", "answer")

        assert evaluation == fallback_evaluation("ref", [])


class TestIsBlank:
    def test_blank_values(self):
        assert is_blank(None)
        assert is_blank("")
        assert is_blank(" \n\t")
        assert not is_blank(" x ")
