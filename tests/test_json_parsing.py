from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from interview_engine.providers.base import Provider
from interview_engine.providers.exceptions import (
    OverloadedError,
    ProviderParseError,
    ProviderResponseError,
    extract_content_from_response,
    handle_provider_operation,
    parse_json_response,
    retry_with_exponential_backoff,
)


class TestParseJsonResponse:
    def test_plain_object(self):
        assert parse_json_response('{"correctness": 80}') == {"correctness": 80}

    def test_object_inside_prose_and_fences(self):
        content = 'Sure! Here is the evaluation:\n```json\n{"correctness": 40, "reason": "uses {braces}"}\n```'

        assert parse_json_response(content) == {"correctness": 40, "reason": "uses {braces}"}

    def test_array_inside_prose(self):
        content = 'Questions:\n[{"question": "What is a closure?"}]\nGood luck.'

        assert parse_json_response(content, "array") == [{"question": "What is a closure?"}]

    def test_control_characters_are_tolerated(self):
        content = 'Result: {"reason": "line one\x01line two"}'

        assert parse_json_response(content) == {"reason": "line one line two"}

    def test_wrong_shape_is_rejected(self):
        with pytest.raises(ProviderParseError):
            parse_json_response('{"question": "x"}', "array")

    @pytest.mark.parametrize("content", ["", "   ", "no json at all", '{"unterminated": '])
    def test_unrecoverable_content(self, content):
        with pytest.raises(ProviderParseError):
            parse_json_response(content)


class TestExtractContent:
    def test_openai_output_text(self):
        assert extract_content_from_response(SimpleNamespace(output_text="hi"), "openai") == "hi"

    def test_anthropic_text_blocks(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="world"),
            ]
        )

        assert extract_content_from_response(response, "anthropic") == "Hello world"

    def test_google_text(self):
        assert extract_content_from_response(SimpleNamespace(text=None), "google") == ""

    def test_unknown_vendor(self):
        with pytest.raises(ProviderResponseError):
            extract_content_from_response(SimpleNamespace(), "acme")


class TestHandleProviderOperation:
    def _run(self, operation_func, **kwargs):
        return handle_provider_operation(
            operation="evaluate_answer",
            provider="mock",
            model="test-model",
            operation_func=operation_func,
            fallback_factory=lambda: "fallback",
            **kwargs,
        )

    def test_success_passes_through(self):
        assert self._run(lambda: "ok") == "ok"

    @pytest.mark.parametrize(
        "error",
        [ProviderParseError("bad"), KeyError("missing"), ValueError("bad value"), ConnectionError("reset")],
    )
    def test_failures_fall_back(self, error):
        operation = Mock(side_effect=error)

        assert self._run(operation) == "fallback"
        operation.assert_called_once()

    def test_overload_retried_then_succeeds(self):
        operation = Mock(side_effect=[OverloadedError("busy"), OverloadedError("busy"), "ok"])

        with patch("interview_engine.providers.exceptions.time.sleep") as sleep:
            assert self._run(operation) == "ok"

        assert operation.call_count == 3
        assert sleep.call_count == 1

    def test_overload_exhausted_falls_back(self):
        operation = Mock(side_effect=OverloadedError("busy"))

        with patch("interview_engine.providers.exceptions.time.sleep"):
            assert self._run(operation, max_retries=2) == "fallback"

        # first call plus the retry budget
        assert operation.call_count == 3


class TestRetryWithBackoff:
    def test_delays_grow_exponentially(self):
        operation = Mock(side_effect=[OverloadedError("busy")] * 3 + ["ok"])

        with patch("interview_engine.providers.exceptions.time.sleep") as sleep, patch(
            "interview_engine.providers.exceptions.random.uniform", return_value=0.0
        ):
            assert retry_with_exponential_backoff(operation, max_retries=5, base_delay=0.5) == "ok"

        assert [call.args[0] for call in sleep.call_args_list] == [0.5, 1.0, 2.0]

    def test_other_errors_are_not_retried(self):
        operation = Mock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            retry_with_exponential_backoff(operation)

        operation.assert_called_once()


class TestProviderFromId:
    def test_requires_vendor_prefix(self):
        with pytest.raises(ValueError, match="vendor:model"):
            Provider.from_id("gpt-4o-mini")

    def test_unknown_vendor(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            Provider.from_id("acme:model-1")
