"""Read-only progress figures derived from a word bank snapshot."""
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from spellcoach.config import settings
from spellcoach.models.word_models import WordRecord, WordState
from spellcoach.services.error_patterns import (
    get_pattern_name,
    get_struggling_words,
    summarize_error_patterns,
)
from spellcoach.services.mastery_tracker import MasteryPolicy, get_word_state
from spellcoach.services.session_selector import SessionSelector

QUICK_SPELLING_MS = 3000
PERFECT_WEEK_DAYS = 7
HIGH_MASTERY_RATE = 0.5
HIGH_MASTERY_MIN_WORDS = 10
ADD_MORE_MASTERY_RATE = 0.8
ADD_MORE_MAX_WORDS = 50
DOMINANT_PATTERN_MIN_COUNT = 3


def _attempt_date(timestamp: datetime) -> date:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(UTC)
    return timestamp.date()


def count_mastered_words(words: Iterable[WordRecord], policy: Optional[MasteryPolicy] = None) -> int:
    policy = policy or MasteryPolicy.from_settings()
    return sum(
        1 for word in words
        if word.is_active and get_word_state(word, policy) is WordState.MASTERED
    )


def count_active_words(words: Iterable[WordRecord]) -> int:
    return sum(1 for word in words if word.is_active)


def calculate_accuracy(words: Iterable[WordRecord]) -> float:
    """Correct share of every recorded attempt, 0.0 without attempts."""
    total = 0
    correct = 0
    for word in words:
        for attempt in word.attempt_history or []:
            total += 1
            if attempt.was_correct:
                correct += 1
    return correct / total if total else 0.0


def practice_dates(words: Iterable[WordRecord]) -> Set[date]:
    """Calendar days (UTC) with at least one attempt."""
    return {
        _attempt_date(attempt.timestamp)
        for word in words
        for attempt in word.attempt_history or []
    }


def calculate_streak(words: Iterable[WordRecord], today: Optional[date] = None) -> int:
    """Consecutive practice days ending today or yesterday.

    A day without attempts ends the streak; a streak whose last day is
    before yesterday is already broken.
    """
    dates = practice_dates(words)
    if not dates:
        return 0
    today = today or datetime.now(UTC).date()
    latest = max(dates)
    if latest < today - timedelta(days=1):
        return 0
    streak = 0
    day = latest
    while day in dates:
        streak += 1
        day -= timedelta(days=1)
    return streak


def calculate_best_streak(words: Iterable[WordRecord]) -> int:
    """Longest run of consecutive practice days ever."""
    dates = sorted(practice_dates(words))
    best = 0
    run = 0
    previous: Optional[date] = None
    for day in dates:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def get_words_due_count(words: Iterable[WordRecord], now: Optional[datetime] = None) -> int:
    """Active learning and reviewing words ready for practice."""
    return SessionSelector().count_due_words(words, now)


def _mastery_date(word: WordRecord) -> Optional[datetime]:
    for attempt in reversed(word.attempt_history or []):
        if attempt.was_correct:
            return attempt.timestamp
    return word.last_attempt_at


def get_recently_mastered_words(
    words: Iterable[WordRecord],
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    limit: int = 8,
) -> List[WordRecord]:
    """Mastered words whose last correct attempt falls in the recent window."""
    now = now or datetime.now(UTC)
    days = settings.analysis.recent_mastery_days if days is None else days
    cutoff = now - timedelta(days=days)
    policy = MasteryPolicy.from_settings()
    recent = []
    for word in words:
        if not word.is_active or get_word_state(word, policy, now) is not WordState.MASTERED:
            continue
        mastered_at = _mastery_date(word)
        if mastered_at is not None and mastered_at >= cutoff:
            recent.append((mastered_at, word))
    recent.sort(key=lambda item: (item[0], item[1].text), reverse=True)
    return [word for _, word in recent[:limit]]


# Achievements


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    icon: str
    threshold: int = 1
    tier: Optional[int] = None


@dataclass(frozen=True)
class Achievement:
    definition: AchievementDefinition
    is_earned: bool
    progress: float
    progress_text: Optional[str] = None
    earned_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.definition.id


STREAK_ACHIEVEMENTS = (
    AchievementDefinition("streak-master-3", "Streak Starter", "Practice for 3 days in a row", "🔥", 3, 1),
    AchievementDefinition("streak-master-5", "Streak Champion", "Practice for 5 days in a row", "🔥", 5, 2),
    AchievementDefinition("streak-master-7", "Streak Master", "Practice for 7 days in a row", "🔥", 7, 3),
)

MASTERY_ACHIEVEMENTS = (
    AchievementDefinition("word-wizard-10", "Word Learner", "Master 10 words", "📚", 10, 1),
    AchievementDefinition("word-wizard-25", "Word Scholar", "Master 25 words", "📚", 25, 2),
    AchievementDefinition("word-wizard-50", "Word Wizard", "Master 50 words", "📚", 50, 3),
)

FIRST_TIMER = AchievementDefinition("first-timer", "First Steps", "Spell your first word correctly", "⭐")
QUICK_SPELLER = AchievementDefinition(
    "quick-speller", "Quick Speller", "Spell a word correctly in under 3 seconds", "⚡"
)
PERFECT_WEEK = AchievementDefinition("perfect-week", "Perfect Week", "100% accuracy for 7 days straight", "✨")


def _tiered(definition: AchievementDefinition, value: int, unit: str) -> Achievement:
    return Achievement(
        definition=definition,
        is_earned=value >= definition.threshold,
        progress=min(1.0, value / definition.threshold),
        progress_text=f"{value}/{definition.threshold} {unit}",
    )


def _single(definition: AchievementDefinition, earned_at: Optional[datetime]) -> Achievement:
    earned = earned_at is not None
    return Achievement(definition=definition, is_earned=earned, progress=1.0 if earned else 0.0, earned_at=earned_at)


def first_correct_at(words: Iterable[WordRecord]) -> Optional[datetime]:
    stamps = [
        attempt.timestamp
        for word in words
        for attempt in word.attempt_history or []
        if attempt.was_correct
    ]
    return min(stamps) if stamps else None


def quick_spelling_at(words: Iterable[WordRecord], threshold_ms: int = QUICK_SPELLING_MS) -> Optional[datetime]:
    stamps = [
        attempt.timestamp
        for word in words
        for attempt in word.attempt_history or []
        if attempt.was_correct and attempt.time_ms is not None and attempt.time_ms < threshold_ms
    ]
    return min(stamps) if stamps else None


def perfect_week_at(words: Iterable[WordRecord], days: int = PERFECT_WEEK_DAYS) -> Optional[datetime]:
    """End of the first run of consecutive days with every attempt correct."""
    totals: Dict[date, List[int]] = {}
    for word in words:
        for attempt in word.attempt_history or []:
            day = totals.setdefault(_attempt_date(attempt.timestamp), [0, 0])
            day[0] += 1
            if attempt.was_correct:
                day[1] += 1
    perfect = sorted(day for day, (total, correct) in totals.items() if total and correct == total)
    run = 0
    previous: Optional[date] = None
    for day in perfect:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        if run >= days:
            return datetime(day.year, day.month, day.day, tzinfo=UTC)
        previous = day
    return None


def calculate_achievements(words: Iterable[WordRecord], today: Optional[date] = None) -> List[Achievement]:
    """Evaluate every badge tier independently; nothing is stored."""
    words = list(words)
    streak = calculate_streak(words, today)
    mastered = count_mastered_words(words)

    achievements = [_tiered(definition, streak, "days") for definition in STREAK_ACHIEVEMENTS]
    achievements.append(_single(FIRST_TIMER, first_correct_at(words)))
    achievements.extend(_tiered(definition, mastered, "words") for definition in MASTERY_ACHIEVEMENTS)
    achievements.append(_single(QUICK_SPELLER, quick_spelling_at(words)))
    achievements.append(_single(PERFECT_WEEK, perfect_week_at(words)))
    return achievements


# Status and export rows


@dataclass(frozen=True)
class WordStatusSummary:
    word_id: str
    text: str
    has_introduced: bool
    mastery_level: int
    state: WordState
    is_active: bool


def get_word_status(word: WordRecord, policy: Optional[MasteryPolicy] = None) -> WordStatusSummary:
    return WordStatusSummary(
        word_id=word.id,
        text=word.text,
        has_introduced=word.introduced_at is not None,
        mastery_level=word.mastery_level,
        state=get_word_state(word, policy),
        is_active=word.is_active,
    )


EXPORT_COLUMNS = ("Word", "Status", "Level", "Accuracy %", "Attempts", "Correct", "Last Practiced")


@dataclass(frozen=True)
class WordExportRow:
    word: str
    status: str
    level: int
    accuracy: int
    attempts: int
    correct: int
    last_practiced_date: Optional[date]

    def as_dict(self) -> Dict[str, object]:
        """Row keyed by the export column headers."""
        values = (
            self.word,
            self.status,
            self.level,
            self.accuracy,
            self.attempts,
            self.correct,
            self.last_practiced_date.isoformat() if self.last_practiced_date else "",
        )
        return dict(zip(EXPORT_COLUMNS, values))


def get_export_rows(words: Iterable[WordRecord]) -> List[WordExportRow]:
    """One row per word, sorted by text."""
    policy = MasteryPolicy.from_settings()
    rows = []
    for word in sorted(words, key=lambda w: w.text):
        status = "Archived" if not word.is_active else get_word_state(word, policy).value.capitalize()
        rows.append(
            WordExportRow(
                word=word.text,
                status=status,
                level=word.mastery_level,
                accuracy=round(word.accuracy * 100),
                attempts=word.times_used,
                correct=word.times_correct,
                last_practiced_date=_attempt_date(word.last_attempt_at) if word.last_attempt_at else None,
            )
        )
    return rows


# Recommendations


class RecommendationType(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    TIP = "tip"
    INFO = "info"


@dataclass(frozen=True)
class Recommendation:
    type: RecommendationType
    message: str


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def generate_recommendations(words: Iterable[WordRecord], now: Optional[datetime] = None) -> List[Recommendation]:
    """Actionable insights for the parent dashboard."""
    now = now or datetime.now(UTC)
    analysis = settings.analysis
    words = list(words)
    active = [word for word in words if word.is_active]
    policy = MasteryPolicy.from_settings()
    states = [get_word_state(word, policy, now) for word in active]
    learning = states.count(WordState.LEARNING)
    mastered = states.count(WordState.MASTERED)
    recommendations: List[Recommendation] = []

    recent_mastered = len(get_recently_mastered_words(active, now, limit=len(active)))
    if recent_mastered:
        recommendations.append(Recommendation(
            RecommendationType.SUCCESS,
            f"Great progress! {_plural(recent_mastered, 'word')} mastered this week!",
        ))

    pattern_stats = summarize_error_patterns(active)
    dominant = sorted(
        ((pattern, stats) for pattern, stats in pattern_stats.items() if stats.count >= DOMINANT_PATTERN_MIN_COUNT),
        key=lambda item: -item[1].count,
    )
    if dominant:
        pattern, stats = dominant[0]
        recommendations.append(Recommendation(
            RecommendationType.TIP,
            f"Focus on {get_pattern_name(pattern).lower()} this week - "
            f"it's the most common challenge ({stats.count} occurrences).",
        ))

    if learning >= analysis.too_many_learning_words:
        recommendations.append(Recommendation(
            RecommendationType.WARNING,
            f"{learning} words are still being learned. "
            "Consider focusing on fewer words before adding new ones.",
        ))

    struggling = get_struggling_words(active)
    if struggling:
        hardest = struggling[0]
        recommendations.append(Recommendation(
            RecommendationType.WARNING,
            f'"{hardest.word.text}" needs targeted practice - only {hardest.accuracy_percent}% '
            f"accuracy after {hardest.attempts} attempts.",
        ))

    mastery_rate = mastered / len(active) if active else 0.0
    if mastery_rate >= HIGH_MASTERY_RATE and mastered >= HIGH_MASTERY_MIN_WORDS:
        recommendations.append(Recommendation(
            RecommendationType.SUCCESS,
            f"{round(mastery_rate * 100)}% of words mastered! Excellent work - keep up the momentum!",
        ))

    if mastery_rate >= ADD_MORE_MASTERY_RATE and len(active) < ADD_MORE_MAX_WORDS:
        recommendations.append(Recommendation(
            RecommendationType.INFO,
            "Ready for more? Consider adding words from the next grade level to keep progressing.",
        ))

    last_practice = max((word.last_attempt_at for word in active if word.last_attempt_at), default=None)
    if active and last_practice is not None:
        idle_days = (now - last_practice).days
        if idle_days >= analysis.inactivity_warning_days:
            recommendations.append(Recommendation(
                RecommendationType.WARNING,
                f"It's been {idle_days} days since last practice. Regular practice helps retention!",
            ))

    return recommendations


@dataclass(frozen=True)
class MissionMessage:
    title: str
    subtitle: str


def get_todays_mission_message(
    due_count: int,
    mastered_count: int,
    total_count: int,
    can_introduce_new: bool,
) -> MissionMessage:
    if due_count > 0:
        return MissionMessage(
            f"{_plural(due_count, 'word')} ready to practice!",
            "Let's master this word!" if due_count == 1 else "Let's do this!",
        )
    if can_introduce_new and total_count > mastered_count:
        return MissionMessage("Ready for new challenges?", "Time to learn some new words!")
    if total_count > 0 and mastered_count == total_count:
        return MissionMessage("Amazing! All words mastered!", "Add more words to keep learning!")
    return MissionMessage("You're all caught up!", "Check back later for more practice.")
