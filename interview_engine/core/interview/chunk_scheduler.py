import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from interview_engine.core.constants import (
    DEFAULT_CHUNK_POLL_SECONDS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CHUNK_WAIT_SECONDS,
)
from interview_engine.core.logging import (
    get_run_id,
    get_trace_id,
    is_masking,
    log_event,
    set_masking,
    set_run_id,
    set_trace_id,
)
from interview_engine.core.storage_interface import SessionStore

from .chunking import chunk_count

PreprocessFn = Callable[[str, int], int]

# trace id, run id, masking flag
LogContext = tuple[str | None, str | None, bool]


class ChunkScheduler:
    """Single-flight, one-chunk read-ahead scheduler for one session.

    At most one preprocessing run is in flight at a time; a request made while
    one is running is skipped, not queued. Readiness is read from the store's
    committed-chunk set, so it survives restarts.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        preprocess: PreprocessFn,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        wait_seconds: float = DEFAULT_CHUNK_WAIT_SECONDS,
        poll_seconds: float = DEFAULT_CHUNK_POLL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.session_id = session_id
        self.preprocess = preprocess
        self.chunk_size = chunk_size
        self.wait_seconds = wait_seconds
        self.poll_seconds = poll_seconds
        self._sleep = sleep
        self._lock = threading.Lock()
        self._in_flight: int | None = None
        self._future: Future | None = None
        self._terminated = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"preprocess-{session_id[:8]}")

    @property
    def in_flight(self) -> int | None:
        with self._lock:
            return self._in_flight

    @property
    def terminated(self) -> bool:
        return self._terminated

    def total_chunks(self) -> int:
        return chunk_count(len(self.store.get_primary_questions(self.session_id)), self.chunk_size)

    def is_ready(self, chunk_number: int) -> bool:
        return chunk_number in self.store.get_preprocessed_chunks(self.session_id)

    def _claim(self, chunk_number: int) -> bool:
        """Take the single-flight slot for a chunk that still needs work."""
        if self._terminated:
            return False
        if chunk_number < 0 or chunk_number >= self.total_chunks():
            return False
        if self.is_ready(chunk_number):
            return False
        with self._lock:
            if self._in_flight is not None:
                log_event(
                    "chunk.request_skipped",
                    component="scheduler",
                    session_id=self.session_id,
                    chunk_number=chunk_number,
                    in_flight=self._in_flight,
                    level=logging.DEBUG,
                )
                return False
            self._in_flight = chunk_number
            return True

    def _log_context(self) -> LogContext:
        return get_trace_id() or self.session_id, get_run_id(), is_masking()

    def _run(self, chunk_number: int, log_context: LogContext | None = None) -> None:
        if log_context is not None:
            # executor threads do not inherit the requesting thread's context variables
            trace_id, run_id, mask = log_context
            set_trace_id(trace_id)
            set_run_id(run_id)
            set_masking(mask)
        try:
            log_event(
                "chunk.preprocess_started",
                component="scheduler",
                session_id=self.session_id,
                chunk_number=chunk_number,
            )
            self.preprocess(self.session_id, chunk_number)
        except Exception as e:  # noqa: BLE001 : a failed run leaves the chunk uncommitted for a later retry
            log_event(
                "chunk.preprocess_failed",
                component="scheduler",
                session_id=self.session_id,
                chunk_number=chunk_number,
                error_type=type(e).__name__,
                error_msg=str(e),
                level=logging.ERROR,
            )
        finally:
            with self._lock:
                self._in_flight = None

    def request(self, chunk_number: int) -> bool:
        """Start preprocessing a chunk in the background. Returns False if nothing was started."""
        if not self._claim(chunk_number):
            return False
        try:
            self._future = self._executor.submit(self._run, chunk_number, self._log_context())
        except RuntimeError:
            # terminated between claim and submit
            with self._lock:
                self._in_flight = None
            return False
        return True

    def run_now(self, chunk_number: int) -> bool:
        """Preprocess a chunk on the calling thread, respecting the single-flight guard."""
        if not self._claim(chunk_number):
            return self.is_ready(chunk_number)
        self._run(chunk_number)
        return self.is_ready(chunk_number)

    def request_readahead(self, current_chunk: int) -> bool:
        """Kick off chunk N+1 once a question of chunk N is about to be asked."""
        return self.request(current_chunk + 1)

    def wait_for(self, chunk_number: int) -> bool:
        """Bounded poll for a chunk to be committed. Returns False on timeout."""
        attempts = max(0, int(self.wait_seconds / self.poll_seconds)) if self.poll_seconds > 0 else 0
        for attempt in range(attempts + 1):
            if self.is_ready(chunk_number):
                return True
            if self._terminated:
                return False
            # Picks the chunk up once the slot frees, if nobody else has
            self.request(chunk_number)
            if attempt < attempts:
                self._sleep(self.poll_seconds)

        log_event(
            "chunk.wait_timeout",
            component="scheduler",
            session_id=self.session_id,
            chunk_number=chunk_number,
            waited_seconds=self.wait_seconds,
            message_detail="continuing anyway",
            level=logging.WARNING,
        )
        return False

    def drain(self, timeout: float | None = None) -> None:
        """Block until the in-flight run, if any, has finished."""
        future = self._future
        if future is not None:
            future.result(timeout=timeout)

    def terminate(self) -> None:
        """Stop scheduling; an in-flight run may finish but nothing new starts."""
        self._terminated = True
        self._executor.shutdown(wait=False)
        log_event("chunk.scheduler_terminated", component="scheduler", session_id=self.session_id)
