from enum import Enum


class InterviewState(Enum):
    """Lifecycle states of a technical interview session."""

    INITIALIZING = "initializing"
    GENERATING_QUESTIONS = "generating_questions"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# Valid state transitions - keeps the state machine simple and predictable
VALID_TRANSITIONS: dict[InterviewState, set[InterviewState]] = {
    InterviewState.INITIALIZING: {
        InterviewState.GENERATING_QUESTIONS,
        InterviewState.FAILED,
    },
    InterviewState.GENERATING_QUESTIONS: {
        InterviewState.IN_PROGRESS,
        InterviewState.FAILED,
    },
    InterviewState.IN_PROGRESS: {
        InterviewState.COMPLETED,
        InterviewState.FAILED,
    },
    InterviewState.COMPLETED: set(),  # Terminal state
    InterviewState.FAILED: set(),  # Terminal state
}


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: InterviewState, to_state: InterviewState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def validate_transition(from_state: InterviewState, to_state: InterviewState) -> bool:
    """Check if a state transition is valid."""
    if not isinstance(from_state, InterviewState):
        raise ValueError(f"Invalid from_state type: {type(from_state)}")
    if not isinstance(to_state, InterviewState):
        raise ValueError(f"Invalid to_state type: {type(to_state)}")

    return to_state in VALID_TRANSITIONS.get(from_state, set())


def transition(from_state: InterviewState, to_state: InterviewState) -> InterviewState:
    """Return the new state, raising StateTransitionError on an invalid move."""
    if not validate_transition(from_state, to_state):
        raise StateTransitionError(from_state, to_state)
    return to_state


def is_terminal_state(state: InterviewState) -> bool:
    """Check if state is terminal (no further transitions possible)."""
    if not isinstance(state, InterviewState):
        raise ValueError(f"Invalid state type: {type(state)}")

    return state in {InterviewState.COMPLETED, InterviewState.FAILED}


def validate_state_machine_completeness() -> list[str]:
    """Validate that all states have defined transitions and catch orphaned states."""
    issues = []
    all_states = set(InterviewState)
    defined_states = set(VALID_TRANSITIONS.keys())

    orphaned_states = all_states - defined_states
    if orphaned_states:
        issues.append(f"States without transitions: {orphaned_states}")

    reachable = {InterviewState.INITIALIZING}
    for transitions in VALID_TRANSITIONS.values():
        reachable.update(transitions)

    unreachable = all_states - reachable
    if unreachable:
        issues.append(f"Unreachable states: {unreachable}")

    return issues
