import logging

from interview_engine.core.audio_storage import AudioRenderer
from interview_engine.core.constants import DEFAULT_CHUNK_SIZE
from interview_engine.core.logging import log_event, preview, span
from interview_engine.core.models import Question
from interview_engine.core.storage_interface import SessionStore

from .answer_grader import AnswerGrader
from .question_generator import QuestionGenerator


class PreprocessingPipeline:
    """Enriches one chunk of primary questions and commits it to the store.

    Enrichment failures (reference answer, audio, follow-up generation) are
    logged and skipped. Store failures propagate so the chunk is not committed.
    """

    def __init__(
        self,
        store: SessionStore,
        generator: QuestionGenerator,
        grader: AnswerGrader,
        audio: AudioRenderer | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.store = store
        self.generator = generator
        self.grader = grader
        self.audio = audio
        self.chunk_size = chunk_size

    def enrich(self, session_id: str, question: Question) -> tuple[Question, bool]:
        """Attach reference answer and audio. Returns the question and whether it has a reference answer."""
        enriched = question
        if question.is_technical and not question.reference_answer:
            try:
                reference = self.grader.generate_reference_answer(question.text)
            except Exception as e:  # noqa: BLE001 : enrichment failure never blocks the chunk
                log_event(
                    "preprocess.reference_failed",
                    component="preprocess",
                    session_id=session_id,
                    question_id=question.id,
                    error_type=type(e).__name__,
                    level=logging.WARNING,
                )
                reference = None
            if reference is not None:
                enriched = enriched.model_copy(
                    update={"reference_answer": reference.answer, "source_urls": reference.source_urls}
                )
            else:
                log_event(
                    "preprocess.reference_missing",
                    component="preprocess",
                    session_id=session_id,
                    question_id=question.id,
                    level=logging.WARNING,
                )

        if self.audio is not None:
            audio_url = self.audio.render(session_id, enriched)
            if audio_url:
                enriched = enriched.model_copy(update={"audio_url": audio_url})

        return enriched, bool(enriched.reference_answer)

    def prepare(self, session_id: str, question: Question, insert_after: str | None = None) -> tuple[Question, bool]:
        """Enrich and persist one question, spliced after `insert_after` when given."""
        enriched, has_reference = self.enrich(session_id, question)
        self.store.add_asked_question(session_id, enriched, insert_after=insert_after)
        return enriched, has_reference

    def prepare_depth_followups(self, session_id: str, parent: Question, only: tuple[str, ...] = ("medium", "hard")) -> list[Question]:
        """Generate, enrich and store depth follow-ups right after their parent, medium before hard."""
        try:
            followups = self.generator.generate_depth_questions(parent)
        except Exception as e:  # noqa: BLE001 : a missing follow-up only shortens the ladder
            log_event(
                "preprocess.depth_failed",
                component="preprocess",
                session_id=session_id,
                question_id=parent.id,
                error_type=type(e).__name__,
                level=logging.WARNING,
            )
            return []

        stored = []
        anchor = parent.id
        for followup in followups:
            if followup.difficulty not in only:
                continue
            prepared, _ = self.prepare(session_id, followup, insert_after=anchor)
            stored.append(prepared)
            anchor = prepared.id
        return stored

    def preprocess_chunk(self, session_id: str, chunk_number: int) -> int:
        """Preprocess one chunk. Returns the number of primary questions processed.

        Already-committed chunks and already-stored questions are skipped, so a
        re-run never duplicates stored content. If the session completes mid-run
        the chunk is abandoned without being committed.
        """
        if chunk_number in self.store.get_preprocessed_chunks(session_id):
            log_event(
                "chunk.already_preprocessed",
                component="preprocess",
                session_id=session_id,
                chunk_number=chunk_number,
            )
            return 0

        questions = self.store.get_questions_for_chunk(session_id, chunk_number, self.chunk_size)
        stored_ids = {q.id for q in self.store.get_asked_questions(session_id)}
        processed = 0

        with span(
            "chunk.preprocess",
            component="preprocess",
            operation="preprocess_chunk",
            session_id=session_id,
            chunk_number=chunk_number,
            questions=len(questions),
        ):
            for question in questions:
                if self.store.is_session_complete(session_id):
                    log_event(
                        "chunk.preprocess_abandoned",
                        component="preprocess",
                        session_id=session_id,
                        chunk_number=chunk_number,
                        processed=processed,
                    )
                    return processed
                if question.id in stored_ids:
                    continue

                prepared, has_reference = self.prepare(session_id, question)
                processed += 1
                log_event(
                    "preprocess.question_ready",
                    component="preprocess",
                    session_id=session_id,
                    chunk_number=chunk_number,
                    question_id=prepared.id,
                    has_reference=has_reference,
                    has_audio=prepared.audio_url is not None,
                    question_preview=preview(prepared.text),
                    level=logging.DEBUG,
                )

                if prepared.is_technical and has_reference:
                    self.prepare_depth_followups(session_id, prepared)

            self.store.mark_chunk_preprocessed(session_id, chunk_number)

        log_event(
            "chunk.preprocessed",
            component="preprocess",
            session_id=session_id,
            chunk_number=chunk_number,
            processed=processed,
        )
        return processed
