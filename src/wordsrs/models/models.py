"""Database models for the scheduler."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from wordsrs.models.base import Base, TimestampMixin, UTCDateTime


class LearningWord(Base, TimestampMixin):
    """A vocabulary item the learner has added to their set."""

    __tablename__ = "learning_words"

    id = Column(Integer, primary_key=True)  # insertion order
    item_id = Column(String, unique=True, nullable=False, index=True)  # e.g. "A1:run"
    word = Column(String, nullable=False)
    level = Column(String, nullable=False)
    translation = Column(String)
    forms = Column(JSON)  # e.g. ["go", "went", "gone"]
    is_custom = Column(Boolean, default=False)
    added_at = Column(UTCDateTime)

    # Relationships
    stat = relationship(
        "WordStat",
        back_populates="learning_word",
        uselist=False,
        cascade="all, delete-orphan",
    )


class WordStat(Base, TimestampMixin):
    """Scheduling record and answer statistics of one learning word."""

    __tablename__ = "word_stats"

    item_id = Column(
        String,
        ForeignKey("learning_words.item_id", ondelete="CASCADE"),
        primary_key=True,
    )
    schema_version = Column(Integer, nullable=False, default=2)
    phase = Column(String, nullable=False, default="new")  # new, learning, review
    step_index = Column(Integer, default=0)
    interval_days = Column(Integer, default=0)
    ease = Column(Float, nullable=False)
    due_at = Column(UTCDateTime)
    lapses = Column(Integer, default=0)
    correct = Column(Integer, default=0)
    incorrect = Column(Integer, default=0)
    total_answers = Column(Integer, default=0)
    total_time_ms = Column(Integer, default=0)
    acc_score = Column(Integer, default=0)  # 0-10
    difficulty = Column(Integer, default=0)  # 0-5
    first_seen_at = Column(UTCDateTime)
    last_review_at = Column(UTCDateTime)

    # Relationships
    learning_word = relationship("LearningWord", back_populates="stat")


class SrsDay(Base, TimestampMixin):
    """Daily new/review ledger. A single row is kept."""

    __tablename__ = "srs_day"

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False)
    new_introduced_count = Column(Integer, default=0)
    review_answer_count = Column(Integer, default=0)
    extra_answer_count = Column(Integer, default=0)  # answers past the review cap


class PracticeSession(Base, TimestampMixin):
    """Persisted practice mode and scheduled-session cursor. A single row is kept."""

    __tablename__ = "practice_sessions"

    id = Column(Integer, primary_key=True)
    mode = Column(String, nullable=False, default="scheduled")  # scheduled, endless
    session_date = Column(Date)
    item_ids = Column(JSON, default=list)
    current_review_index = Column(Integer, default=0)
    correct_streak = Column(Integer, default=0)
    total_correct = Column(Integer, default=0)


class WeeklyProgress(Base, TimestampMixin):
    """Number of answers given on a local day."""

    __tablename__ = "weekly_progress"

    id = Column(Integer, primary_key=True)
    date = Column(Date, unique=True, nullable=False)
    count = Column(Integer, default=0)
