"""Mastery tracking: turns attempt outcomes into updated word state."""
import bisect
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Iterable, List, Optional, Union

from spellcoach.config import (
    LEARNING_MAX_LEVEL,
    MASTERED_DECAY_DAYS,
    MASTERY_STEP_DOWN,
    MASTERY_STEP_UP,
    MAX_MASTERY_LEVEL,
    MIN_MASTERY_LEVEL,
    MasterySettings,
    settings,
)
from spellcoach.models.word_models import (
    AttemptKey,
    AttemptOutcome,
    AttemptRecord,
    WordRecord,
    WordState,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MasteryPolicy:
    """Step sizes and bounds of the mastery level."""
    step_up: int = MASTERY_STEP_UP
    step_down: int = MASTERY_STEP_DOWN
    min_level: int = MIN_MASTERY_LEVEL
    max_level: int = MAX_MASTERY_LEVEL
    learning_max_level: int = LEARNING_MAX_LEVEL
    mastered_decay_days: Optional[int] = MASTERED_DECAY_DAYS

    @classmethod
    def from_settings(cls, mastery: Optional[MasterySettings] = None) -> "MasteryPolicy":
        mastery = mastery or settings.mastery
        return cls(
            step_up=mastery.step_up,
            step_down=mastery.step_down,
            min_level=mastery.min_level,
            max_level=mastery.max_level,
            learning_max_level=mastery.learning_max_level,
        )

    def clamp(self, level: int) -> int:
        return max(self.min_level, min(self.max_level, level))

    def apply(self, level: int, was_correct: bool) -> int:
        """Return the level after one attempt."""
        if was_correct:
            return self.clamp(level + self.step_up)
        return self.clamp(level - self.step_down)


def get_word_state(
    word: WordRecord,
    policy: Optional[MasteryPolicy] = None,
    now: Optional[datetime] = None,
) -> WordState:
    """Classify a word into its learning lifecycle state.

    Archiving is an overlay and does not change the state.
    """
    policy = policy or MasteryPolicy.from_settings()
    if word.introduced_at is None:
        return WordState.WAITING
    if word.mastery_level >= policy.max_level:
        if policy.mastered_decay_days is not None and word.last_attempt_at is not None:
            now = now or datetime.now(UTC)
            if now - word.last_attempt_at > timedelta(days=policy.mastered_decay_days):
                return WordState.REVIEWING
        return WordState.MASTERED
    if word.mastery_level <= policy.learning_max_level:
        return WordState.LEARNING
    return WordState.REVIEWING


@dataclass(frozen=True)
class AttemptResult:
    """Updated word plus what happened to the attempt."""
    word: WordRecord
    outcome: AttemptOutcome

    @property
    def recorded(self) -> bool:
        return self.outcome is not AttemptOutcome.REPLAYED


def _history_order(attempt: AttemptRecord):
    return (attempt.timestamp, attempt.attempt_id)


class MasteryTracker:
    """Applies attempts to word records.

    All derived fields are recomputable from the attempt log, so two
    diverging offline histories can be merged in any order.
    """

    def __init__(self, policy: Optional[MasteryPolicy] = None):
        self.policy = policy or MasteryPolicy.from_settings()

    def record_attempt(
        self,
        word: WordRecord,
        key: Union[AttemptKey, str],
        typed_text: str,
        was_correct: bool,
        mode: str,
        time_ms: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> AttemptResult:
        """Return the word with the attempt applied.

        The input record is never mutated. Replaying an attempt key that is
        already in the history returns the word unchanged. Raises ValueError
        when an AttemptKey names a different word.
        """
        if isinstance(key, AttemptKey) and key.word_id != word.id:
            raise ValueError(f"Attempt key {key.token} does not belong to word {word.id}")
        attempt_id = key.token if isinstance(key, AttemptKey) else str(key)
        if word.has_attempt(attempt_id):
            logger.warning(f"Attempt {attempt_id} already recorded for '{word.text}', ignoring replay")
            return AttemptResult(word=word, outcome=AttemptOutcome.REPLAYED)

        timestamp = timestamp or datetime.now(UTC)
        attempt = AttemptRecord(
            attempt_id=attempt_id,
            timestamp=timestamp,
            typed_text=typed_text or "",
            was_correct=was_correct,
            mode=mode,
            time_ms=time_ms,
        )

        history = list(word.attempt_history or [])
        if not history or _history_order(history[-1]) <= _history_order(attempt):
            history.append(attempt)
            mastery_level = self.policy.apply(word.mastery_level, was_correct)
        else:
            # Late arrival from an offline device
            bisect.insort(history, attempt, key=_history_order)
            mastery_level = self.derive_mastery_level(history)

        last_attempt_at = word.last_attempt_at
        if last_attempt_at is None or timestamp > last_attempt_at:
            last_attempt_at = timestamp

        updated = replace(
            word,
            attempt_history=history,
            mastery_level=mastery_level,
            last_attempt_at=last_attempt_at,
            introduced_at=word.introduced_at or timestamp,
        )
        outcome = AttemptOutcome.CORRECT if was_correct else AttemptOutcome.INCORRECT
        logger.debug(
            f"'{word.text}' {outcome.value}: mastery {word.mastery_level} -> {mastery_level}"
        )
        return AttemptResult(word=updated, outcome=outcome)

    def derive_mastery_level(self, attempts: Iterable[AttemptRecord]) -> int:
        """Replay an attempt log from a fresh word."""
        level = self.policy.min_level
        for attempt in sorted(attempts, key=_history_order):
            level = self.policy.apply(level, attempt.was_correct)
        return level

    def rebuild(self, word: WordRecord) -> WordRecord:
        """Recompute every derived field of a word from its attempt log."""
        history = sorted(word.attempt_history or [], key=_history_order)
        if not history:
            return replace(word, attempt_history=[], mastery_level=self.policy.clamp(word.mastery_level))
        introduced_at = history[0].timestamp
        if word.introduced_at is not None:
            introduced_at = min(word.introduced_at, introduced_at)
        return replace(
            word,
            attempt_history=history,
            mastery_level=self.derive_mastery_level(history),
            last_attempt_at=history[-1].timestamp,
            introduced_at=introduced_at,
        )

    def merge_histories(self, word: WordRecord, other_attempts: Iterable[AttemptRecord]) -> WordRecord:
        """Union two attempt logs by attempt id and rebuild the word."""
        by_id = {attempt.attempt_id: attempt for attempt in word.attempt_history or []}
        added = 0
        for attempt in other_attempts:
            if attempt.attempt_id not in by_id:
                by_id[attempt.attempt_id] = attempt
                added += 1
        logger.info(f"Merged {added} attempts into '{word.text}'")
        merged: List[AttemptRecord] = list(by_id.values())
        return self.rebuild(replace(word, attempt_history=merged))
