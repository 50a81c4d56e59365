import pytest

from interview_engine.core.interview_state import (
    VALID_TRANSITIONS,
    InterviewState,
    StateTransitionError,
    is_terminal_state,
    transition,
    validate_state_machine_completeness,
    validate_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        ("from_state", "to_state"),
        [
            (InterviewState.INITIALIZING, InterviewState.GENERATING_QUESTIONS),
            (InterviewState.GENERATING_QUESTIONS, InterviewState.IN_PROGRESS),
            (InterviewState.GENERATING_QUESTIONS, InterviewState.FAILED),
            (InterviewState.IN_PROGRESS, InterviewState.COMPLETED),
        ],
    )
    def test_valid_transitions(self, from_state, to_state):
        assert validate_transition(from_state, to_state)
        assert transition(from_state, to_state) is to_state

    @pytest.mark.parametrize(
        ("from_state", "to_state"),
        [
            (InterviewState.INITIALIZING, InterviewState.IN_PROGRESS),
            (InterviewState.COMPLETED, InterviewState.IN_PROGRESS),
            (InterviewState.FAILED, InterviewState.GENERATING_QUESTIONS),
        ],
    )
    def test_invalid_transitions_raise(self, from_state, to_state):
        with pytest.raises(StateTransitionError) as exc_info:
            transition(from_state, to_state)

        assert exc_info.value.from_state is from_state
        assert exc_info.value.to_state is to_state

    def test_non_state_arguments_rejected(self):
        with pytest.raises(ValueError):
            validate_transition("in_progress", InterviewState.COMPLETED)


class TestStateMachine:
    def test_terminal_states(self):
        assert is_terminal_state(InterviewState.COMPLETED)
        assert is_terminal_state(InterviewState.FAILED)
        assert not is_terminal_state(InterviewState.IN_PROGRESS)

    def test_every_state_has_transition_entry(self):
        assert set(VALID_TRANSITIONS) == set(InterviewState)
        assert validate_state_machine_completeness() == []
