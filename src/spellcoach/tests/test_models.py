"""Tests for database models."""
from datetime import UTC, datetime

import pytest
from faker import Faker
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spellcoach.models.models import Attempt, Learner, Word

fake = Faker()


@pytest.fixture
def learner(db: Session) -> Learner:
    learner = Learner(name=fake.user_name())
    db.add(learner)
    db.commit()
    db.refresh(learner)
    return learner


def make_word_row(learner: Learner, text: str = "hello") -> Word:
    return Word(
        id=fake.uuid4(),
        learner_id=learner.id,
        text=text,
        added_at=datetime.now(UTC),
    )


def test_learner_creation(db: Session, learner: Learner) -> None:
    """Test learner creation."""
    assert learner.id is not None
    assert learner.new_words_introduced_today == 0
    assert learner.last_new_word_date is None
    assert learner.created_at is not None


def test_word_creation(db: Session, learner: Learner) -> None:
    """Test word creation."""
    word = make_word_row(learner)
    db.add(word)
    db.commit()
    db.refresh(word)

    assert word.mastery_level == 0
    assert word.is_active is True
    assert word.introduced_at is None
    assert word.archived_at is None
    assert learner.words == [word]


def test_word_text_unique_per_learner(db: Session, learner: Learner) -> None:
    db.add(make_word_row(learner, "hello"))
    db.commit()

    other = Learner(name=fake.user_name() + "2")
    db.add(other)
    db.commit()
    db.add(make_word_row(other, "hello"))
    db.commit()

    db.add(make_word_row(learner, "hello"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_attempt_creation(db: Session, learner: Learner) -> None:
    """Test attempt creation."""
    word = make_word_row(learner)
    db.add(word)
    db.commit()

    db.add(
        Attempt(
            word_id=word.id,
            attempt_id="s1:w1:0",
            timestamp=datetime.now(UTC),
            typed_text="helo",
            was_correct=False,
            mode="practice",
        )
    )
    db.commit()
    db.refresh(word)

    assert len(word.attempts) == 1
    assert word.attempts[0].typed_text == "helo"
    assert word.attempts[0].time_ms is None


def test_attempt_id_unique_per_word(db: Session, learner: Learner) -> None:
    word = make_word_row(learner)
    db.add(word)
    db.commit()

    for _ in range(2):
        db.add(
            Attempt(
                word_id=word.id,
                attempt_id="s1:w1:0",
                timestamp=datetime.now(UTC),
                was_correct=True,
                mode="practice",
            )
        )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_deleting_word_deletes_attempts(db: Session, learner: Learner) -> None:
    word = make_word_row(learner)
    db.add(word)
    db.commit()
    db.add(
        Attempt(
            word_id=word.id,
            attempt_id="s1:w1:0",
            timestamp=datetime.now(UTC),
            was_correct=True,
            mode="practice",
        )
    )
    db.commit()

    db.delete(word)
    db.commit()

    assert db.query(Attempt).count() == 0


if __name__ == "__main__":
    pytest.main([__file__])
