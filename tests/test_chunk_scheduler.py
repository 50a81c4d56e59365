import threading

import pytest

from interview_engine.core.interview.chunk_scheduler import ChunkScheduler
from interview_engine.core.logging import get_run_id, get_trace_id, is_masking, set_masking, set_run_id, set_trace_id
from tests.mocks.factories import make_question


@pytest.fixture
def session_id(store):
    session_id = store.create_session().id
    store.set_primary_questions(session_id, [make_question(f"q{i}") for i in range(6)])
    return session_id


class RecordingPreprocess:
    """Commits the chunk unless told to fail; can be held until released."""

    def __init__(self, store, block: bool = False, fail: bool = False):
        self.store = store
        self.fail = fail
        self.runs: list[int] = []
        self.started = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()

    def __call__(self, session_id: str, chunk_number: int) -> int:
        self.runs.append(chunk_number)
        self.started.set()
        self.release.wait(timeout=5)
        if self.fail:
            raise RuntimeError("enrichment crashed")
        self.store.mark_chunk_preprocessed(session_id, chunk_number)
        return 1


def _scheduler(store, session_id, preprocess, **kwargs) -> ChunkScheduler:
    kwargs.setdefault("chunk_size", 2)
    return ChunkScheduler(store, session_id, preprocess, **kwargs)


class TestRunNow:
    def test_preprocesses_on_calling_thread(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = _scheduler(store, session_id, preprocess)

        assert scheduler.run_now(0) is True
        assert preprocess.runs == [0]
        assert scheduler.in_flight is None

    def test_committed_chunk_is_not_rerun(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = _scheduler(store, session_id, preprocess)
        scheduler.run_now(0)

        assert scheduler.run_now(0) is True
        assert preprocess.runs == [0]

    def test_failure_leaves_chunk_uncommitted_and_frees_slot(self, store, session_id):
        preprocess = RecordingPreprocess(store, fail=True)
        scheduler = _scheduler(store, session_id, preprocess)

        assert scheduler.run_now(0) is False
        assert scheduler.in_flight is None
        assert store.get_preprocessed_chunks(session_id) == set()


class TestRequest:
    def test_single_flight_skips_second_request(self, store, session_id):
        preprocess = RecordingPreprocess(store, block=True)
        scheduler = _scheduler(store, session_id, preprocess)

        assert scheduler.request(1) is True
        assert preprocess.started.wait(timeout=5)
        assert scheduler.in_flight == 1
        assert scheduler.request(2) is False

        preprocess.release.set()
        scheduler.drain(timeout=5)

        assert preprocess.runs == [1]
        assert scheduler.in_flight is None
        assert store.get_preprocessed_chunks(session_id) == {1}

    def test_background_run_logs_under_callers_ids_and_masking(self, store, session_id):
        seen = []

        def preprocess(sid: str, chunk_number: int) -> int:
            seen.append((get_trace_id(), get_run_id(), is_masking()))
            store.mark_chunk_preprocessed(sid, chunk_number)
            return 1

        scheduler = _scheduler(store, session_id, preprocess)
        set_trace_id("trace-abc")
        set_run_id("run-123")
        set_masking(True)

        assert scheduler.request(1)
        scheduler.drain(timeout=5)

        assert seen == [("trace-abc", "run-123", True)]

    def test_out_of_range_and_ready_chunks_are_ignored(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = _scheduler(store, session_id, preprocess)
        scheduler.run_now(0)

        assert scheduler.total_chunks() == 3
        assert scheduler.request(0) is False
        assert scheduler.request(3) is False
        assert scheduler.request(-1) is False

    def test_readahead_targets_next_chunk(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = _scheduler(store, session_id, preprocess)

        assert scheduler.request_readahead(0) is True
        scheduler.drain(timeout=5)

        assert preprocess.runs == [1]

    def test_readahead_past_last_chunk_is_a_no_op(self, store, session_id):
        scheduler = _scheduler(store, session_id, RecordingPreprocess(store))

        assert scheduler.request_readahead(2) is False

    def test_terminated_scheduler_starts_nothing(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = _scheduler(store, session_id, preprocess)

        scheduler.terminate()

        assert scheduler.terminated
        assert scheduler.request(1) is False
        assert scheduler.run_now(1) is False
        assert preprocess.runs == []


class TestWaitFor:
    def test_ready_chunk_returns_immediately(self, store, session_id):
        sleeps = []
        scheduler = _scheduler(store, session_id, RecordingPreprocess(store), sleep=sleeps.append)
        scheduler.run_now(0)

        assert scheduler.wait_for(0) is True
        assert sleeps == []

    def test_times_out_after_bounded_polls(self, store, session_id):
        sleeps = []

        def never_commits(session_id, chunk_number):
            return 0

        scheduler = _scheduler(
            store, session_id, never_commits, wait_seconds=3.0, poll_seconds=1.0, sleep=sleeps.append
        )

        assert scheduler.wait_for(1) is False
        assert sleeps == [1.0, 1.0, 1.0]

    def test_zero_budget_checks_once(self, store, session_id):
        sleeps = []
        preprocess = RecordingPreprocess(store, block=True)
        scheduler = _scheduler(store, session_id, preprocess, wait_seconds=0.0, sleep=sleeps.append)

        assert scheduler.wait_for(1) is False
        assert sleeps == []

        preprocess.release.set()
        scheduler.drain(timeout=5)

    def test_picks_up_chunk_nobody_requested(self, store, session_id):
        preprocess = RecordingPreprocess(store)
        scheduler = None

        def sleep(seconds):
            scheduler.drain(timeout=5)

        scheduler = _scheduler(store, session_id, preprocess, wait_seconds=2.0, poll_seconds=1.0, sleep=sleep)

        assert scheduler.wait_for(2) is True
        assert preprocess.runs == [2]

    def test_terminated_scheduler_stops_waiting(self, store, session_id):
        sleeps = []
        scheduler = _scheduler(store, session_id, RecordingPreprocess(store), sleep=sleeps.append)
        scheduler.terminate()

        assert scheduler.wait_for(1) is False
        assert sleeps == []
