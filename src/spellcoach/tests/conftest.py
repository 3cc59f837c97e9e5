"""Test configuration."""
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Generator, List, Optional

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{Path(tempfile.gettempdir()) / 'spellcoach_test.db'}"
)

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session

from spellcoach.models.base import SessionLocal, drop_db, engine, init_db
from spellcoach.models.word_models import AttemptRecord, WordRecord

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    engine.dispose()
    drop_db()
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


def attempt_at(
    timestamp: datetime,
    was_correct: bool,
    typed_text: str = "",
    attempt_id: Optional[str] = None,
    time_ms: Optional[int] = None,
) -> AttemptRecord:
    return AttemptRecord(
        attempt_id=attempt_id or f"s:{timestamp.isoformat()}:{typed_text}",
        timestamp=timestamp,
        typed_text=typed_text,
        was_correct=was_correct,
        mode="practice",
        time_ms=time_ms,
    )


@pytest.fixture
def make_word() -> Callable[..., WordRecord]:
    """Build word records with sensible defaults."""
    counter = {"n": 0}

    def _make(
        text: str,
        mastery_level: int = 0,
        introduced: bool = True,
        last_attempt_at: Optional[datetime] = None,
        history: Optional[List[AttemptRecord]] = None,
        is_active: bool = True,
        added_at: Optional[datetime] = None,
    ) -> WordRecord:
        counter["n"] += 1
        added = added_at or T0 - timedelta(days=30) + timedelta(minutes=counter["n"])
        history = list(history or [])
        if last_attempt_at is None and history:
            last_attempt_at = max(attempt.timestamp for attempt in history)
        return WordRecord(
            id=f"w{counter['n']}",
            text=text,
            added_at=added,
            mastery_level=mastery_level,
            introduced_at=added if introduced else None,
            is_active=is_active,
            last_attempt_at=last_attempt_at,
            attempt_history=history,
        )

    return _make
