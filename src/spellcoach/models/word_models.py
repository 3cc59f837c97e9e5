"""Value types used by the word selection and mastery engine."""
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import List, Optional, Tuple


WORD_MIN_LENGTH = 2
WORD_MAX_LENGTH = 20
_WORD_RE = re.compile(r"^[a-z]+$")


class WordState(Enum):
    """Learning lifecycle state derived from a word's mastery data."""
    WAITING = "waiting"  # Imported, not yet introduced
    LEARNING = "learning"  # Mastery 0-1
    REVIEWING = "reviewing"  # Mastery 2-4
    MASTERED = "mastered"  # Mastery 5


class AttemptOutcome(Enum):
    """Result of handing an attempt to the mastery tracker."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    REPLAYED = "replayed"  # Same attempt key seen before, nothing changed


class IntroductionMode(Enum):
    """How a newly added word enters rotation."""
    GRADUAL = "gradual"  # Waits for the daily introduction budget
    IMMEDIATE = "immediate"  # Introduced on creation


class AddWordOutcome(Enum):
    """Per-item result of adding a word to a word bank."""
    ADDED = "added"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


class ErrorPattern(Enum):
    """Categorical shape of a spelling mistake."""
    TRANSPOSITION = "transposition"  # freind -> friend
    MISSING_LETTER = "missing-letter"  # diferent -> different
    EXTRA_LETTER = "extra-letter"  # tomorroww -> tomorrow
    DOUBLE_LETTER = "double-letter"  # begining -> beginning
    PHONETIC = "phonetic"  # enuff -> enough
    ENDING = "ending"  # stasion -> station, hapyness -> happiness
    VOWEL_SWAP = "vowel-swap"  # recieve -> receive
    SILENT_LETTER = "silent-letter"  # nife -> knife
    PREFIX = "prefix"  # unecessary -> unnecessary


@dataclass(frozen=True)
class AttemptKey:
    """Idempotency key of one logical attempt."""
    session_id: str
    word_id: str
    sequence: int

    @property
    def token(self) -> str:
        return f"{self.session_id}:{self.word_id}:{self.sequence}"


@dataclass(frozen=True)
class AttemptRecord:
    """One entry of a word's append-only attempt log."""
    attempt_id: str
    timestamp: datetime
    typed_text: str
    was_correct: bool
    mode: str
    time_ms: Optional[int] = None


@dataclass
class WordRecord:
    """One vocabulary item for one learner."""
    id: str
    text: str
    added_at: datetime
    mastery_level: int = 0
    introduced_at: Optional[datetime] = None
    is_active: bool = True
    archived_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    definition: Optional[str] = None
    example_sentence: Optional[str] = None
    attempt_history: List[AttemptRecord] = field(default_factory=list)

    @property
    def times_used(self) -> int:
        return len(self.attempt_history or [])

    @property
    def times_correct(self) -> int:
        return sum(1 for attempt in self.attempt_history or [] if attempt.was_correct)

    @property
    def accuracy(self) -> float:
        """Share of correct attempts, 0.0 when never attempted."""
        if not self.times_used:
            return 0.0
        return self.times_correct / self.times_used

    def has_attempt(self, attempt_id: str) -> bool:
        return any(attempt.attempt_id == attempt_id for attempt in self.attempt_history or [])


@dataclass
class WordBank:
    """Snapshot of every word owned by one learner plus the daily counter."""
    learner_id: int
    words: List[WordRecord] = field(default_factory=list)
    new_words_introduced_today: int = 0
    last_new_word_date: Optional[date] = None

    def find(self, text: str) -> Optional[WordRecord]:
        normalized = normalize_word(text)
        for word in self.words:
            if word.text == normalized:
                return word
        return None


def normalize_word(text: str) -> str:
    return (text or "").strip().lower()


def validate_word(text: str) -> Tuple[bool, Optional[str]]:
    """Check that text is a plausible spelling word."""
    normalized = normalize_word(text)
    if len(normalized) < WORD_MIN_LENGTH:
        return False, f"Word must be at least {WORD_MIN_LENGTH} characters"
    if len(normalized) > WORD_MAX_LENGTH:
        return False, f"Word must be {WORD_MAX_LENGTH} characters or less"
    if not _WORD_RE.match(normalized):
        return False, "Word must contain only letters"
    return True, None


def create_word(
    text: str,
    mode: IntroductionMode = IntroductionMode.IMMEDIATE,
    definition: Optional[str] = None,
    example_sentence: Optional[str] = None,
    now: Optional[datetime] = None,
    word_id: Optional[str] = None,
) -> WordRecord:
    """Create a new word record.

    Immediate words (entered by a parent on purpose) are introduced on
    creation; gradual words (catalog and grade imports) wait in the queue
    until their first attempt.
    """
    now = now or datetime.now(UTC)
    return WordRecord(
        id=word_id or str(uuid.uuid4()),
        text=normalize_word(text),
        added_at=now,
        introduced_at=now if mode is IntroductionMode.IMMEDIATE else None,
        definition=definition,
        example_sentence=example_sentence,
    )
