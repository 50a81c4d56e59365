from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Engine,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Single unified Base for all models using SQLAlchemy 2.0 style
class Base(DeclarativeBase):
    """Base class for all database models with proper typing support."""

    pass


# Function to enable foreign key enforcement - to be called by engines
def enable_sqlite_foreign_keys(engine: Engine):
    """Enable foreign key enforcement for SQLite connections on an engine."""

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        """Enable foreign key enforcement for SQLite connections."""
        if "sqlite" in str(dbapi_connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()


class InterviewSessionTable(Base):
    """One technical interview."""

    __tablename__ = "interview_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    state: Mapped[str] = mapped_column(String, default="initializing")
    duration_minutes: Mapped[int] = mapped_column(Integer)
    is_complete: Mapped[bool] = mapped_column(default=False)
    engine_state: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON serialized EngineState
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    primary_questions: Mapped[list["PrimaryQuestionTable"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", order_by="PrimaryQuestionTable.position"
    )
    asked_questions: Mapped[list["AskedQuestionTable"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", order_by="AskedQuestionTable.position"
    )
    preprocessed_chunks: Mapped[list["PreprocessedChunkTable"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class QuestionColumns:
    """Columns shared by the primary and asked question tables."""

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(String)
    position: Mapped[int] = mapped_column(Integer)
    text: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String)
    difficulty: Mapped[str | None] = mapped_column(String, nullable=True)
    reference_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_urls: Mapped[str] = mapped_column(Text, default="[]")  # JSON list
    audio_url: Mapped[str | None] = mapped_column(String, nullable=True)
    topic_id: Mapped[str | None] = mapped_column(String, nullable=True)
    parent_question_id: Mapped[str | None] = mapped_column(String, nullable=True)
    queue_type: Mapped[str] = mapped_column(String, default="Q1")
    user_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    correctness: Mapped[int | None] = mapped_column(Integer, nullable=True)
    route_action: Mapped[str | None] = mapped_column(String, nullable=True)
    asked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class PrimaryQuestionTable(QuestionColumns, Base):
    """Generated base question list (Q1) in ask order."""

    __tablename__ = "primary_questions"

    session_id: Mapped[str] = mapped_column(ForeignKey("interview_sessions.id", ondelete="CASCADE"))

    session: Mapped["InterviewSessionTable"] = relationship(back_populates="primary_questions")

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_primary_questions_session_question"),
        Index("ix_primary_questions_session_id", "session_id"),
    )


class AskedQuestionTable(QuestionColumns, Base):
    """Preprocessed, asked-eligible questions in presentation order."""

    __tablename__ = "asked_questions"

    session_id: Mapped[str] = mapped_column(ForeignKey("interview_sessions.id", ondelete="CASCADE"))

    session: Mapped["InterviewSessionTable"] = relationship(back_populates="asked_questions")

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_asked_questions_session_question"),
        Index("ix_asked_questions_session_id", "session_id"),
    )


class PreprocessedChunkTable(Base):
    """Commit marker for a chunk whose preprocessing run finished."""

    __tablename__ = "preprocessed_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("interview_sessions.id", ondelete="CASCADE"))
    chunk_number: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    session: Mapped["InterviewSessionTable"] = relationship(back_populates="preprocessed_chunks")

    __table_args__ = (UniqueConstraint("session_id", "chunk_number", name="uq_preprocessed_chunks_session_chunk"),)
