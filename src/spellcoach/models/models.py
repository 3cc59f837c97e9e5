"""Database models for the reference word store."""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from spellcoach.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    """Learner model, owner of one word bank."""

    __tablename__ = "learners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    new_words_introduced_today = Column(Integer, default=0, nullable=False)
    last_new_word_date = Column(Date, nullable=True)

    # Relationships
    words = relationship("Word", back_populates="learner", cascade="all, delete-orphan")


class Word(Base, TimestampMixin):
    """Word model.

    mastery_level, introduced_at and last_attempt_at are a cache of the
    attempt log and are rewritten on every recorded attempt.
    """

    __tablename__ = "words"
    __table_args__ = (UniqueConstraint("learner_id", "text", name="uq_words_learner_text"),)

    id = Column(String(36), primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(String, nullable=False)
    definition = Column(String)
    example_sentence = Column(String)
    added_at = Column(DateTime(timezone=True), nullable=False)
    mastery_level = Column(Integer, default=0, nullable=False)
    introduced_at = Column(DateTime(timezone=True), nullable=True)  # None = waiting
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    learner = relationship("Learner", back_populates="words")
    attempts = relationship(
        "Attempt",
        back_populates="word",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Attempt.timestamp",
    )


class Attempt(Base):
    """Append-only spelling attempt log."""

    __tablename__ = "attempts"
    __table_args__ = (UniqueConstraint("word_id", "attempt_id", name="uq_attempts_word_attempt"),)

    id = Column(Integer, primary_key=True)
    word_id = Column(String(36), ForeignKey("words.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt_id = Column(String, nullable=False)  # session:word:sequence
    timestamp = Column(DateTime(timezone=True), nullable=False)
    typed_text = Column(String, nullable=False, default="")
    was_correct = Column(Boolean, nullable=False)
    mode = Column(String, nullable=False)
    time_ms = Column(Integer, nullable=True)

    # Relationships
    word = relationship("Word", back_populates="attempts")
