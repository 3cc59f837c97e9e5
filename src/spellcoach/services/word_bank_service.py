"""Word store service: persists word banks and drives the engine."""
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spellcoach import monitoring
from spellcoach.exceptions import (
    InsufficientWordsError,
    InvalidWordError,
    LearnerNotFoundError,
    WordNotFoundError,
)
from spellcoach.models.models import Attempt, Learner, Word
from spellcoach.models.word_models import (
    AddWordOutcome,
    AttemptKey,
    AttemptOutcome,
    AttemptRecord,
    IntroductionMode,
    WordBank,
    WordRecord,
    create_word,
    normalize_word,
    validate_word,
)
from spellcoach.services import progress
from spellcoach.services.error_patterns import (
    StrugglingWord,
    analyze_error,
    get_struggling_words,
    sort_patterns,
)
from spellcoach.services.introduction_gate import IntroductionGate
from spellcoach.services.mastery_tracker import AttemptResult, MasteryTracker
from spellcoach.services.session_selector import SessionPlan, SessionSelector
from spellcoach.services.word_list_cache import WordListCache

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass
class DashboardSummary:
    """Figures shown on the learner and parent dashboards."""
    total_words: int
    active_words: int
    mastered_words: int
    words_due: int
    accuracy: float
    streak: int
    best_streak: int
    can_introduce: bool
    new_words_remaining: int
    mission: progress.MissionMessage
    struggling: List[StrugglingWord] = field(default_factory=list)
    recommendations: List[progress.Recommendation] = field(default_factory=list)
    achievements: List[progress.Achievement] = field(default_factory=list)


class WordBankService:
    """Service for managing learners' word banks."""

    def __init__(
        self,
        db: Session,
        tracker: Optional[MasteryTracker] = None,
        gate: Optional[IntroductionGate] = None,
        selector: Optional[SessionSelector] = None,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.tracker = tracker or MasteryTracker()
        self.gate = gate or IntroductionGate(policy=self.tracker.policy)
        self.selector = selector or SessionSelector(policy=self.tracker.policy)

    # Learners

    def get_learner(self, learner_id: int) -> Learner:
        learner = self.db.query(Learner).filter(Learner.id == learner_id).first()
        if not learner:
            raise LearnerNotFoundError(f"Learner {learner_id} not found")
        return learner

    def get_learner_by_name(self, name: str) -> Optional[Learner]:
        return self.db.query(Learner).filter(Learner.name == name).first()

    def get_or_create_learner(self, name: str) -> Learner:
        """Get existing learner or create a new one."""
        learner = self.get_learner_by_name(name)
        if not learner:
            learner = Learner(name=name, new_words_introduced_today=0)
            self.db.add(learner)
            self.db.commit()
            self.db.refresh(learner)
            logger.info(f"Learner created: {name} ({learner.id})")
        return learner

    # Snapshots

    @staticmethod
    def _to_record(row: Word) -> WordRecord:
        history = sorted(
            (
                AttemptRecord(
                    attempt_id=attempt.attempt_id,
                    timestamp=_aware(attempt.timestamp),
                    typed_text=attempt.typed_text or "",
                    was_correct=attempt.was_correct,
                    mode=attempt.mode,
                    time_ms=attempt.time_ms,
                )
                for attempt in row.attempts or []
            ),
            key=lambda attempt: (attempt.timestamp, attempt.attempt_id),
        )
        return WordRecord(
            id=row.id,
            text=row.text,
            added_at=_aware(row.added_at),
            mastery_level=row.mastery_level,
            introduced_at=_aware(row.introduced_at),
            is_active=row.is_active,
            archived_at=_aware(row.archived_at),
            last_attempt_at=_aware(row.last_attempt_at),
            definition=row.definition,
            example_sentence=row.example_sentence,
            attempt_history=history,
        )

    def _load_word_bank(self, learner_id: int) -> WordBank:
        learner = self.get_learner(learner_id)
        rows = (
            self.db.query(Word)
            .filter(Word.learner_id == learner_id)
            .order_by(Word.added_at, Word.text)
            .all()
        )
        return WordBank(
            learner_id=learner.id,
            words=[self._to_record(row) for row in rows],
            new_words_introduced_today=learner.new_words_introduced_today or 0,
            last_new_word_date=learner.last_new_word_date,
        )

    def get_word_bank(self, learner_id: int, cache: Optional[WordListCache] = None) -> WordBank:
        """Current snapshot of a learner's word bank."""
        if cache is None:
            return self._load_word_bank(learner_id)
        return cache.get_or_load(learner_id, lambda: self._load_word_bank(learner_id))

    def _get_word_row(self, learner_id: int, word_id: str) -> Word:
        row = (
            self.db.query(Word)
            .filter(Word.learner_id == learner_id, Word.id == word_id)
            .first()
        )
        if not row:
            raise WordNotFoundError(f"Word {word_id} not found for learner {learner_id}")
        return row

    def get_word(self, learner_id: int, word_id: str) -> WordRecord:
        return self._to_record(self._get_word_row(learner_id, word_id))

    def word_exists(self, learner_id: int, text: str) -> bool:
        return (
            self.db.query(Word.id)
            .filter(Word.learner_id == learner_id, Word.text == normalize_word(text))
            .first()
            is not None
        )

    # Adding and removing words

    def _insert_word(self, learner_id: int, record: WordRecord) -> None:
        self.db.add(
            Word(
                id=record.id,
                learner_id=learner_id,
                text=record.text,
                definition=record.definition,
                example_sentence=record.example_sentence,
                added_at=record.added_at,
                mastery_level=record.mastery_level,
                introduced_at=record.introduced_at,
                is_active=record.is_active,
            )
        )

    def add_word(
        self,
        learner_id: int,
        text: str,
        mode: IntroductionMode = IntroductionMode.IMMEDIATE,
        definition: Optional[str] = None,
        example_sentence: Optional[str] = None,
    ) -> bool:
        """Add one word. Returns False when the learner already has it."""
        self.get_learner(learner_id)
        valid, error = validate_word(text)
        if not valid:
            monitoring.words_added.labels(outcome=AddWordOutcome.INVALID.value).inc()
            raise InvalidWordError(f"{text!r}: {error}")

        if self.word_exists(learner_id, text):
            logger.info(f"Word '{normalize_word(text)}' already in bank of learner {learner_id}")
            monitoring.words_added.labels(outcome=AddWordOutcome.DUPLICATE.value).inc()
            return False

        record = create_word(text, mode, definition=definition, example_sentence=example_sentence)
        self._insert_word(learner_id, record)
        self.db.commit()
        monitoring.words_added.labels(outcome=AddWordOutcome.ADDED.value).inc()
        if mode is IntroductionMode.IMMEDIATE:
            monitoring.words_introduced.labels(mode=mode.value).inc()
        logger.info(f"Added word '{record.text}' ({mode.value}) for learner {learner_id}")
        return True

    def add_words(
        self,
        learner_id: int,
        texts: Iterable[str],
        mode: IntroductionMode = IntroductionMode.GRADUAL,
    ) -> List[Tuple[str, AddWordOutcome]]:
        """Bulk add with a per-item outcome, in input order, paired with the text as given."""
        self.get_learner(learner_id)
        outcomes: List[Tuple[str, AddWordOutcome]] = []
        seen = set()
        added = 0
        for text in texts:
            normalized = normalize_word(text)
            valid, _ = validate_word(text)
            if not valid:
                outcome = AddWordOutcome.INVALID
            elif normalized in seen or self.word_exists(learner_id, normalized):
                outcome = AddWordOutcome.DUPLICATE
            else:
                self._insert_word(learner_id, create_word(normalized, mode))
                outcome = AddWordOutcome.ADDED
                added += 1
            seen.add(normalized)
            outcomes.append((text, outcome))
            monitoring.words_added.labels(outcome=outcome.value).inc()

        self.db.commit()
        logger.info(f"Added {added} of {len(outcomes)} words ({mode.value}) for learner {learner_id}")
        return outcomes

    def archive_word(self, learner_id: int, word_id: str) -> WordRecord:
        """Hide a word from rotation, keeping its history."""
        row = self._get_word_row(learner_id, word_id)
        if row.is_active:
            row.is_active = False
            row.archived_at = datetime.now(UTC)
            self.db.commit()
            logger.info(f"Archived word '{row.text}' for learner {learner_id}")
        return self._to_record(row)

    def unarchive_word(self, learner_id: int, word_id: str) -> WordRecord:
        row = self._get_word_row(learner_id, word_id)
        if not row.is_active:
            row.is_active = True
            row.archived_at = None
            self.db.commit()
            logger.info(f"Restored word '{row.text}' for learner {learner_id}")
        return self._to_record(row)

    def remove_word(self, learner_id: int, word_id: str) -> bool:
        """Delete a word and its attempt history."""
        row = (
            self.db.query(Word)
            .filter(Word.learner_id == learner_id, Word.id == word_id)
            .first()
        )
        if not row:
            return False
        text = row.text
        self.db.delete(row)
        self.db.commit()
        logger.info(f"Removed word '{text}' for learner {learner_id}")
        return True

    def force_introduce_word(self, learner_id: int, word_id: str) -> WordRecord:
        """Move a waiting word into rotation now, bypassing the daily cap."""
        row = self._get_word_row(learner_id, word_id)
        if row.introduced_at is None:
            row.introduced_at = datetime.now(UTC)
            self.db.commit()
            monitoring.words_introduced.labels(mode=IntroductionMode.IMMEDIATE.value).inc()
            logger.info(f"Introduced word '{row.text}' for learner {learner_id}")
        return self._to_record(row)

    # Practice

    def start_session(
        self,
        learner_id: int,
        max_words: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SessionPlan:
        """Build the word list for a new session.

        Raises InsufficientWordsError when the caller must not start one.
        """
        now = now or datetime.now(UTC)
        bank = self.get_word_bank(learner_id)
        decision = self.gate.can_introduce_new_words(bank, now.astimezone(UTC).date())
        try:
            plan = self.selector.select_words_for_session(
                bank.words,
                max_words_per_session=max_words,
                new_word_budget=decision.remaining,
                now=now,
            )
        except InsufficientWordsError:
            monitoring.sessions_declined.inc()
            raise

        monitoring.sessions_started.inc()
        monitoring.session_size.observe(len(plan))
        logger.info(
            f"Session for learner {learner_id}: {len(plan)} words, "
            f"{len(plan.words_to_introduce)} new (budget {decision.remaining})"
        )
        return plan

    def record_attempt(
        self,
        learner_id: int,
        word_id: str,
        key: Union[AttemptKey, str],
        typed_text: str,
        was_correct: bool,
        mode: str,
        time_ms: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> AttemptResult:
        """Record one attempt and persist the updated word.

        Replays of an attempt key leave the store untouched.
        """
        row = self._get_word_row(learner_id, word_id)
        before = self._to_record(row)
        result = self.tracker.record_attempt(
            before, key, typed_text, was_correct, mode, time_ms=time_ms, timestamp=timestamp
        )
        if result.outcome is AttemptOutcome.REPLAYED:
            monitoring.attempts_recorded.labels(outcome=result.outcome.value).inc()
            return result

        attempt_id = key.token if isinstance(key, AttemptKey) else str(key)
        attempt = next(a for a in result.word.attempt_history if a.attempt_id == attempt_id)
        self.db.add(
            Attempt(
                word_id=row.id,
                attempt_id=attempt.attempt_id,
                timestamp=attempt.timestamp,
                typed_text=attempt.typed_text,
                was_correct=attempt.was_correct,
                mode=attempt.mode,
                time_ms=attempt.time_ms,
            )
        )
        row.mastery_level = result.word.mastery_level
        row.last_attempt_at = result.word.last_attempt_at
        row.introduced_at = result.word.introduced_at

        if before.introduced_at is None:
            self._register_introduction(row.learner, attempt.timestamp.astimezone(UTC).date())

        try:
            self.db.commit()
        except IntegrityError:
            # Another writer stored the same attempt first
            self.db.rollback()
            logger.warning(f"Attempt {attempt_id} was stored concurrently, treating as replay")
            monitoring.attempts_recorded.labels(outcome=AttemptOutcome.REPLAYED.value).inc()
            return AttemptResult(word=self.get_word(learner_id, word_id), outcome=AttemptOutcome.REPLAYED)

        monitoring.attempts_recorded.labels(outcome=result.outcome.value).inc()
        if time_ms is not None:
            monitoring.attempt_duration.observe(time_ms / 1000)
        if not was_correct:
            patterns = sort_patterns(analyze_error(typed_text, before.text))
            for pattern in patterns:
                monitoring.error_patterns_detected.labels(pattern=pattern.value).inc()
            logger.info(
                f"'{before.text}' typed as '{typed_text}' "
                f"[{', '.join(p.value for p in patterns) or 'unclassified'}]"
            )
        logger.info(
            f"Recorded {result.outcome.value} attempt for '{before.text}' "
            f"(mastery {before.mastery_level} -> {result.word.mastery_level})"
        )
        return result

    def _register_introduction(self, learner: Learner, day: date) -> None:
        bank = WordBank(
            learner_id=learner.id,
            new_words_introduced_today=learner.new_words_introduced_today or 0,
            last_new_word_date=learner.last_new_word_date,
        )
        bank = self.gate.register_introductions(bank, 1, day)
        learner.new_words_introduced_today = bank.new_words_introduced_today
        learner.last_new_word_date = bank.last_new_word_date
        monitoring.words_introduced.labels(mode=IntroductionMode.GRADUAL.value).inc()

    # Reporting

    def get_word_statuses(self, learner_id: int) -> List[progress.WordStatusSummary]:
        bank = self.get_word_bank(learner_id)
        return [progress.get_word_status(word, self.tracker.policy) for word in bank.words]

    def get_export_rows(self, learner_id: int) -> List[progress.WordExportRow]:
        return progress.get_export_rows(self.get_word_bank(learner_id).words)

    def get_dashboard(self, learner_id: int, now: Optional[datetime] = None) -> DashboardSummary:
        """Every dashboard figure, computed from one snapshot."""
        now = now or datetime.now(UTC)
        bank = self.get_word_bank(learner_id)
        words = bank.words
        decision = self.gate.can_introduce_new_words(bank, now.date())
        mastered = progress.count_mastered_words(words, self.tracker.policy)
        active = progress.count_active_words(words)
        due = self.selector.count_due_words(words, now)
        return DashboardSummary(
            total_words=len(words),
            active_words=active,
            mastered_words=mastered,
            words_due=due,
            accuracy=progress.calculate_accuracy(words),
            streak=progress.calculate_streak(words, now.date()),
            best_streak=progress.calculate_best_streak(words),
            can_introduce=decision.can_introduce,
            new_words_remaining=decision.remaining,
            mission=progress.get_todays_mission_message(due, mastered, active, decision.can_introduce),
            struggling=get_struggling_words(words),
            recommendations=progress.generate_recommendations(words, now),
            achievements=progress.calculate_achievements(words, now.date()),
        )
