import json
import logging
from io import StringIO
from unittest.mock import patch

import pytest

from interview_engine.core.logging import (
    LOGGER_NAME,
    ContextFilter,
    JsonFormatter,
    _coerce_level,
    get_run_id,
    get_trace_id,
    init_logging,
    is_masking,
    log_event,
    mask_text,
    preview,
    set_masking,
    set_trace_id,
    short_uuid,
    span,
)

ANSWER = "A closure captures variables from its enclosing scope"


@pytest.fixture
def json_output():
    """Capture stdout JSON log lines after a fresh init."""
    with patch("sys.stdout", new_callable=StringIO) as stdout:
        init_logging(fmt="json", level=logging.DEBUG)
        yield stdout


def records(stdout, event=None) -> list[dict]:
    lines = [json.loads(line) for line in stdout.getvalue().splitlines() if line]
    if event is None:
        return lines
    return [line for line in lines if line.get("event") == event]


def _record(**attributes) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, "", 0, "test message", (), None)
    for key, value in attributes.items():
        setattr(record, key, value)
    return record


class TestMasking:
    def test_mask_text_passthrough_when_disabled(self):
        assert mask_text(ANSWER) == ANSWER

    def test_mask_text_hides_content(self):
        set_masking(True)

        assert mask_text(ANSWER) == f"[masked len={len(ANSWER)}]"

    def test_preview_flattens_and_truncates(self):
        assert preview("What is\n  a closure?") == "What is a closure?"
        assert len(preview("x" * 200)) == 60
        assert preview(None) == ""

    def test_preview_respects_masking(self):
        set_masking(True)

        assert preview(ANSWER).startswith("[masked len=")


class TestLevelsAndIds:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (logging.DEBUG, logging.DEBUG),
            ("warning", logging.WARNING),
            ("CRITICAL", logging.CRITICAL),
            ("bogus", logging.INFO),
            (None, logging.INFO),
            ("", logging.INFO),
        ],
    )
    def test_coerce_level(self, raw, expected):
        assert _coerce_level(raw) == expected

    def test_short_uuid_is_twelve_hex_chars(self):
        value = short_uuid()

        assert len(value) == 12
        assert all(c in "0123456789abcdef" for c in value)
        assert value != short_uuid()


class TestFormatting:
    def test_filter_injects_correlation_fields(self):
        set_trace_id("session-1")
        record = _record()

        assert get_trace_id() == "session-1"
        assert ContextFilter().filter(record) is True
        assert record.trace_id == "session-1"
        assert record.component is None
        assert record.event == "test"

    def test_json_formatter_keeps_extras_and_drops_builtins(self):
        record = _record(event="routing.deepen", session_id="s1", score=90)

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["event"] == "routing.deepen"
        assert parsed["session_id"] == "s1"
        assert parsed["score"] == 90
        assert parsed["timestamp"].endswith("Z")
        assert "lineno" not in parsed and "pathname" not in parsed


class TestInitLogging:
    def test_returns_package_logger_and_sets_run_id(self):
        with patch("sys.stdout", new_callable=StringIO):
            logger = init_logging()

        assert logger.name == LOGGER_NAME
        assert len(get_run_id()) == 12

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("INTERVIEW_ENGINE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("INTERVIEW_ENGINE_LOG_FORMAT", "json")
        monkeypatch.setenv("INTERVIEW_ENGINE_LOG_MASK", "true")

        with patch("sys.stdout", new_callable=StringIO):
            init_logging()

        assert logging.getLogger().level == logging.DEBUG
        assert is_masking() is True

    def test_repeated_init_keeps_one_handler(self):
        with patch("sys.stdout", new_callable=StringIO):
            init_logging()
            init_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_stderr_output(self):
        with patch("sys.stderr", new_callable=StringIO) as stderr:
            init_logging(fmt="json", use_stderr=True)
            log_event("cli.start", command="interview")

        assert records(stderr, "cli.start")[0]["command"] == "interview"

    def test_file_output(self, tmp_path):
        log_file = tmp_path / "engine.log"

        init_logging(fmt="json", file_path=str(log_file))
        log_event("chunk.preprocessed", chunk_number=0)
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert lines[-1]["event"] == "chunk.preprocessed"
        assert lines[-1]["chunk_number"] == 0

    def test_unwritable_file_falls_back_to_stderr(self, tmp_path):
        with patch("sys.stderr", new_callable=StringIO):
            init_logging(file_path=str(tmp_path))

        handler = logging.getLogger().handlers[0]
        assert not isinstance(handler, logging.FileHandler)


class TestEventsAndSpans:
    def test_log_event_carries_fields_and_trace(self, json_output):
        set_trace_id("session-1")

        log_event("routing.remediate", session_id="session-1", score=5, level=logging.WARNING)

        entry = records(json_output, "routing.remediate")[0]
        assert entry["level"] == "warning"
        assert entry["score"] == 5
        assert entry["trace_id"] == "session-1"

    def test_span_success(self, json_output):
        with span("chunk.preprocess", component="preprocess", chunk_number=1):
            pass

        entry = records(json_output, "chunk.preprocess")[0]
        assert entry["status"] == "ok"
        assert entry["component"] == "preprocess"
        assert entry["chunk_number"] == 1
        assert entry["duration_ms"] >= 0

    def test_span_error_is_logged_and_reraised(self, json_output):
        with pytest.raises(ValueError):
            with span("interview.generate", component="pipeline"):
                raise ValueError("bad reply")

        entry = records(json_output, "interview.generate")[0]
        assert entry["status"] == "error"
        assert entry["error_type"] == "ValueError"
        assert entry["error_msg"] == "bad reply"

    def test_nested_spans_log_inner_first(self, json_output):
        with span("outer.op", component="outer"):
            with span("inner.op", component="inner"):
                pass

        events = [entry["event"] for entry in records(json_output) if "duration_ms" in entry]
        assert events == ["inner.op", "outer.op"]
