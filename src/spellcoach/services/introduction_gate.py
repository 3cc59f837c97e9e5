"""Daily cap on how many waiting words may enter rotation."""
import logging
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from typing import Optional

from spellcoach.config import settings
from spellcoach.models.word_models import IntroductionMode, WordBank, WordState
from spellcoach.services.mastery_tracker import MasteryPolicy, get_word_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntroductionDecision:
    """Whether new words may be introduced today, and how many."""
    can_introduce: bool
    remaining: int
    reason: Optional[str] = None


def today_utc() -> date:
    return datetime.now(UTC).date()


class IntroductionGate:
    """Decides eligibility only; introduced_at is set by the first attempt."""

    def __init__(
        self,
        daily_cap: Optional[int] = None,
        learning_pause: Optional[int] = None,
        policy: Optional[MasteryPolicy] = None,
    ):
        introduction = settings.introduction
        self.daily_cap = introduction.max_new_words_per_day if daily_cap is None else daily_cap
        self.learning_pause = introduction.max_learning_before_pause if learning_pause is None else learning_pause
        self.policy = policy or MasteryPolicy.from_settings()

    def introduced_today(self, bank: WordBank, today: Optional[date] = None) -> int:
        """Today's counter, treating a stale date as a reset."""
        today = today or today_utc()
        if bank.last_new_word_date != today:
            return 0
        return bank.new_words_introduced_today

    def count_learning_words(self, bank: WordBank) -> int:
        return sum(
            1 for word in bank.words
            if word.is_active and get_word_state(word, self.policy) is WordState.LEARNING
        )

    def can_introduce_new_words(self, bank: WordBank, today: Optional[date] = None) -> IntroductionDecision:
        """Check the remaining daily budget of a word bank.

        New words are paused while too many words are still being learned.
        """
        learning = self.count_learning_words(bank)
        if learning >= self.learning_pause:
            return IntroductionDecision(
                can_introduce=False,
                remaining=0,
                reason=f"Too many words being learned ({learning}). Master some first!",
            )
        remaining = max(0, self.daily_cap - self.introduced_today(bank, today))
        if not remaining:
            return IntroductionDecision(can_introduce=False, remaining=0, reason="Daily new word limit reached")
        return IntroductionDecision(can_introduce=True, remaining=remaining)

    def admits(
        self,
        bank: WordBank,
        count: int,
        mode: IntroductionMode = IntroductionMode.GRADUAL,
        today: Optional[date] = None,
    ) -> int:
        """How many of count waiting words may be introduced under mode."""
        if mode is IntroductionMode.IMMEDIATE:
            return count
        return min(count, self.can_introduce_new_words(bank, today).remaining)

    def register_introductions(self, bank: WordBank, count: int, today: Optional[date] = None) -> WordBank:
        """Return the bank with count gradual introductions added to the counter.

        The counter date never moves backwards: an introduction dated before
        the last counted day (an offline attempt merged late) is charged to
        that last day.
        """
        if count <= 0:
            return bank
        today = today or today_utc()
        if bank.last_new_word_date is not None and today < bank.last_new_word_date:
            logger.info(
                f"Learner {bank.learner_id} introduction dated {today} arrived late, "
                f"counting it on {bank.last_new_word_date}"
            )
            today = bank.last_new_word_date
        introduced = self.introduced_today(bank, today) + count
        if introduced > self.daily_cap:
            logger.info(f"Learner {bank.learner_id} introduced {introduced} words today, cap is {self.daily_cap}")
        return replace(bank, new_words_introduced_today=introduced, last_new_word_date=today)
