"""Builds the ordered word queue for one practice session."""
import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from spellcoach.config import settings
from spellcoach.exceptions import InsufficientWordsError
from spellcoach.models.word_models import WordRecord, WordState
from spellcoach.services.mastery_tracker import MasteryPolicy, get_word_state

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class SessionPlan:
    """Word list computed once at session start."""
    words: List[str]
    word_ids: List[str]
    words_to_introduce: List[str] = field(default_factory=list)
    spot_check_words: List[str] = field(default_factory=list)
    eligible_count: int = 0

    def __len__(self) -> int:
        return len(self.words)


def review_priority(word: WordRecord) -> tuple:
    """Sort key: lowest mastery, then never attempted, then oldest attempt.

    added_at and text break the remaining ties so selection is repeatable.
    """
    attempted = word.last_attempt_at is not None
    return (
        word.mastery_level,
        attempted,
        word.last_attempt_at or _NEVER,
        word.added_at,
        word.text,
    )


def is_word_due(
    word: WordRecord,
    now: Optional[datetime] = None,
    intervals_days: Optional[Sequence[int]] = None,
) -> bool:
    """True when an introduced word has waited out its review interval."""
    if word.introduced_at is None:
        return False
    if word.last_attempt_at is None:
        return True
    intervals_days = intervals_days or settings.mastery.review_intervals_days
    level = max(0, min(word.mastery_level, len(intervals_days) - 1))
    now = now or datetime.now(UTC)
    return word.last_attempt_at + timedelta(days=intervals_days[level]) <= now


class SessionSelector:
    """Picks the words most likely to be forgotten."""

    def __init__(
        self,
        min_words_per_session: Optional[int] = None,
        policy: Optional[MasteryPolicy] = None,
        max_new_words_per_session: Optional[int] = None,
        max_new_word_share: Optional[float] = None,
        spot_check_interval_days: Optional[int] = None,
        spot_checks_per_session: Optional[int] = None,
    ):
        session = settings.session
        if min_words_per_session is None:
            min_words_per_session = session.min_words_per_session
        self.min_words_per_session = min_words_per_session
        self.policy = policy or MasteryPolicy.from_settings()
        self.max_new_words_per_session = (
            session.max_new_words_per_session if max_new_words_per_session is None else max_new_words_per_session
        )
        self.max_new_word_share = session.max_new_word_share if max_new_word_share is None else max_new_word_share
        self.spot_check_interval_days = (
            session.spot_check_interval_days if spot_check_interval_days is None else spot_check_interval_days
        )
        self.spot_checks_per_session = (
            session.spot_checks_per_session if spot_checks_per_session is None else spot_checks_per_session
        )

    def new_word_quota(self, max_words_per_session: int, introduced_count: int) -> int:
        """How many waiting words one session may introduce.

        At most max_new_words_per_session and the configured share of the
        session, unless the learner has too few introduced words to fill it.
        """
        share = max(1, math.floor(max_words_per_session * self.max_new_word_share))
        quota = min(self.max_new_words_per_session, share)
        if introduced_count < max_words_per_session:
            quota = max(quota, max_words_per_session - introduced_count)
        return quota

    def needs_spot_check(self, word: WordRecord, now: datetime) -> bool:
        if word.last_attempt_at is None:
            return True
        return now - word.last_attempt_at >= timedelta(days=self.spot_check_interval_days)

    def select_words_for_session(
        self,
        words: Iterable[WordRecord],
        max_words_per_session: Optional[int] = None,
        new_word_budget: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SessionPlan:
        """Return the ordered, duplicate-free word list for a session.

        Learning and reviewing words come first, then waiting words up to
        the per-session quota and new_word_budget (None means only the
        quota applies), then mastered words not checked for a while, at
        most spot_checks_per_session of them. Other mastered words are
        used only to reach the minimum session size. Raises
        InsufficientWordsError when fewer than the minimum number of
        active words exist.
        """
        if max_words_per_session is None:
            max_words_per_session = settings.session.max_words_per_session
        now = now or datetime.now(UTC)

        active: List[WordRecord] = []
        seen = set()
        for word in words:
            if not word.is_active or word.text in seen:
                continue
            seen.add(word.text)
            active.append(word)

        if len(active) < self.min_words_per_session:
            logger.warning(
                f"Only {len(active)} active words, need {self.min_words_per_session} for a session"
            )
            raise InsufficientWordsError(len(active), self.min_words_per_session)

        in_rotation: List[WordRecord] = []
        waiting: List[WordRecord] = []
        mastered: List[WordRecord] = []
        for word in active:
            state = get_word_state(word, self.policy, now)
            if state is WordState.WAITING:
                waiting.append(word)
            elif state is WordState.MASTERED:
                mastered.append(word)
            else:
                in_rotation.append(word)

        in_rotation.sort(key=review_priority)
        waiting.sort(key=lambda w: (w.added_at, w.text))
        mastered.sort(key=review_priority)

        quota = self.new_word_quota(max_words_per_session, len(in_rotation) + len(mastered))
        if new_word_budget is not None:
            quota = min(quota, new_word_budget)
        waiting = waiting[:max(0, quota)]

        spot_checks = [w for w in mastered if self.needs_spot_check(w, now)]
        spot_checks = spot_checks[:max(0, self.spot_checks_per_session)]
        spot_check_ids = {w.id for w in spot_checks}

        ordered = in_rotation + waiting + spot_checks
        if len(ordered) < self.min_words_per_session:
            filler = [w for w in mastered if w.id not in spot_check_ids]
            ordered += filler[:self.min_words_per_session - len(ordered)]

        chosen = ordered[:max(0, max_words_per_session)]
        waiting_ids = {w.id for w in waiting}

        plan = SessionPlan(
            words=[w.text for w in chosen],
            word_ids=[w.id for w in chosen],
            words_to_introduce=[w.text for w in chosen if w.id in waiting_ids],
            spot_check_words=[w.text for w in chosen if w.id in spot_check_ids],
            eligible_count=len(ordered),
        )
        logger.debug(
            f"Selected {len(plan)} of {plan.eligible_count} eligible words "
            f"({len(plan.words_to_introduce)} new, {len(plan.spot_check_words)} spot checks)"
        )
        return plan

    def count_due_words(self, words: Iterable[WordRecord], now: Optional[datetime] = None) -> int:
        """Active learning and reviewing words that are ready for practice."""
        now = now or datetime.now(UTC)
        count = 0
        for word in words:
            if not word.is_active:
                continue
            state = get_word_state(word, self.policy, now)
            if state in (WordState.LEARNING, WordState.REVIEWING) and is_word_due(
                word, now, settings.mastery.review_intervals_days
            ):
                count += 1
        return count
