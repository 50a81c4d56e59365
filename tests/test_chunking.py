import pytest

from interview_engine.core.interview.chunking import (
    chunk_count,
    chunk_number_for,
    interleave_queues,
    split_into_chunks,
)
from tests.mocks.factories import depth_pair, make_question


class TestSplitIntoChunks:
    def test_twelve_questions_in_chunks_of_five(self):
        questions = [make_question(f"q{i}") for i in range(12)]

        chunks = split_into_chunks(questions, chunk_size=5)

        assert [chunk.chunk_number for chunk in chunks] == [0, 1, 2]
        assert [len(chunk.questions) for chunk in chunks] == [5, 5, 2]
        assert chunks[1].questions[0].id == "q5"

    def test_marks_preprocessed_chunks(self):
        questions = [make_question(f"q{i}") for i in range(6)]

        chunks = split_into_chunks(questions, chunk_size=2, preprocessed={0, 2})

        assert [chunk.preprocessed for chunk in chunks] == [True, False, True]

    def test_empty_list_has_no_chunks(self):
        assert split_into_chunks([], chunk_size=5) == []
        assert chunk_count(0, 5) == 0

    def test_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError):
            chunk_count(10, 0)


class TestInterleaveQueues:
    def test_followups_follow_their_parent(self):
        q1, q2, q3 = (make_question(f"q{i}", topic_id=f"topic_{i}") for i in (1, 2, 3))
        medium, hard = depth_pair(q2)
        remediation = make_question("r1", category="followup", parent_question_id="q1", queue_type="Q3")

        flattened = interleave_queues([q1, q2, q3], [hard, remediation, medium])

        assert [q.id for q in flattened] == ["q1", "r1", "q2", "q2_hard", "q2_medium", "q3"]

    def test_grandchildren_resolve_to_root(self):
        q1 = make_question("q1")
        medium, _ = depth_pair(q1)
        remediation = make_question("r1", category="followup", parent_question_id="q1_medium", queue_type="Q3")

        flattened = interleave_queues([q1, make_question("q2")], [medium, remediation])

        assert [q.id for q in flattened] == ["q1", "q1_medium", "r1", "q2"]

    def test_orphans_go_to_tail(self):
        orphan = make_question("o1", parent_question_id="missing")

        flattened = interleave_queues([make_question("q1")], [orphan])

        assert [q.id for q in flattened] == ["q1", "o1"]


class TestChunkNumberFor:
    def test_primary_question_uses_own_index(self):
        primary = [make_question(f"q{i}") for i in range(7)]

        assert chunk_number_for(primary[0], primary, chunk_size=5) == 0
        assert chunk_number_for(primary[6], primary, chunk_size=5) == 1

    def test_followup_uses_parent_chunk(self):
        primary = [make_question(f"q{i}") for i in range(7)]
        medium, hard = depth_pair(primary[5])
        remediation = make_question("r1", category="followup", parent_question_id="q5_medium")
        stored = [primary[5], medium, hard, remediation]

        assert chunk_number_for(medium, primary, stored, chunk_size=5) == 1
        assert chunk_number_for(remediation, primary, stored, chunk_size=5) == 1

    def test_unrelated_question_has_no_chunk(self):
        primary = [make_question("q1")]

        assert chunk_number_for(make_question("x"), primary, [], chunk_size=5) is None
