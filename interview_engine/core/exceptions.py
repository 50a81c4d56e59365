"""Engine-level exceptions.

Only the categories that must reach the caller are exceptions. Parse, grading,
enrichment and readiness-timeout failures are recovered where they happen and
show up as fallback values plus a warning log event.
"""


class InterviewEngineError(Exception):
    """Base exception for the interview engine."""

    pass


class ConfigurationError(InterviewEngineError):
    """Raised when required job or resume context is missing."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Cannot generate questions without: {', '.join(missing)}")


class GenerationError(InterviewEngineError):
    """Raised when question generation produced nothing usable."""

    pass


class PersistenceError(InterviewEngineError):
    """Raised when the session store cannot complete a write or read."""

    pass


class SessionNotFoundError(PersistenceError):
    """Raised when a session cannot be found."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class QuestionNotFoundError(PersistenceError):
    """Raised when a question cannot be found in a session."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id} not found")
