"""Spelling mistake classification.

Compares what the learner typed with the target word and tags the shape of
the mistake, so practice can target why a word was misspelled and not only
that it was. Everything here is pure and deterministic.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from Levenshtein import distance as levenshtein_distance

from spellcoach.config import settings
from spellcoach.models.word_models import ErrorPattern, WordRecord, normalize_word

logger = logging.getLogger(__name__)

VOWELS = frozenset("aeiou")

# Silent letter and the clusters it hides in
SILENT_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "k": ("kn",),  # knife, know
    "w": ("wr",),  # write, wrong
    "g": ("gn",),  # gnome, sign
    "b": ("mb", "bt"),  # thumb, doubt
    "h": ("gh", "rh"),  # ghost, rhythm
    "p": ("ps",),  # psalm
    "t": ("tch",),  # watch
}

# Spellings that sound alike
PHONETIC_PAIRS: Tuple[Tuple[str, str], ...] = (
    ("f", "ph"),
    ("f", "gh"),
    ("k", "c"),
    ("k", "ck"),
    ("s", "c"),
    ("z", "s"),
    ("j", "g"),
    ("sh", "ti"),
    ("sh", "ci"),
)

# Word endings that are easily confused with each other
ENDING_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ("tion", "sion", "cian"),
    ("able", "ible"),
    ("ance", "ence"),
    ("ant", "ent"),
    ("er", "or", "ar"),
    ("ary", "ery"),
    ("ful", "full"),
)

# Suffixes whose attachment changes the base word
SUFFIXES = ("ing", "ed", "er", "est", "ly", "ness", "ful", "less", "ment", "tion", "sion")

PREFIXES = ("un", "dis", "mis", "re", "pre", "non", "over", "under")

PATTERN_NAMES: Dict[ErrorPattern, str] = {
    ErrorPattern.TRANSPOSITION: "Swapped Letters",
    ErrorPattern.MISSING_LETTER: "Missing Letters",
    ErrorPattern.EXTRA_LETTER: "Extra Letters",
    ErrorPattern.DOUBLE_LETTER: "Double Letters",
    ErrorPattern.PHONETIC: "Sound vs Spelling",
    ErrorPattern.ENDING: "Word Endings",
    ErrorPattern.VOWEL_SWAP: "Vowel Order",
    ErrorPattern.SILENT_LETTER: "Silent Letters",
    ErrorPattern.PREFIX: "Word Beginnings",
}

PATTERN_DESCRIPTIONS: Dict[ErrorPattern, str] = {
    ErrorPattern.TRANSPOSITION: "Letters in wrong order",
    ErrorPattern.MISSING_LETTER: "Left out a letter",
    ErrorPattern.EXTRA_LETTER: "Added an extra letter",
    ErrorPattern.DOUBLE_LETTER: "Missing or extra double letters",
    ErrorPattern.PHONETIC: "Spelled how it sounds, but not correct",
    ErrorPattern.ENDING: 'Word ending rules (-tion/-sion, -able/-ible, -ing, -ness)',
    ErrorPattern.VOWEL_SWAP: 'Vowels in wrong order (like "ie" vs "ei")',
    ErrorPattern.SILENT_LETTER: 'Missing silent letters (like the "k" in "knife")',
    ErrorPattern.PREFIX: "Word beginning rules (un-, dis-, re-)",
}

_PATTERN_ORDER = {pattern: index for index, pattern in enumerate(ErrorPattern)}


def _hint_text(pattern: ErrorPattern, word: str) -> str:
    if pattern is ErrorPattern.TRANSPOSITION:
        return f'The letters in "{word}" are almost right, but two got switched around. Check the order!'
    if pattern is ErrorPattern.MISSING_LETTER:
        return f'Take another look - "{word}" has {len(word)} letters. Check each one carefully.'
    if pattern is ErrorPattern.EXTRA_LETTER:
        return f'There might be one too many letters. Say "{word}" slowly and count the sounds.'
    if pattern is ErrorPattern.DOUBLE_LETTER:
        doubles = sorted({a for a, b in zip(word, word[1:]) if a == b})
        if doubles:
            letters = " and ".join(f'"{letter}{letter}"' for letter in doubles)
            return f'"{word}" has a double letter: {letters}. Say it slowly and listen for where the sound holds longer.'
        return f'"{word}" has no double letters. Write each sound once.'
    if pattern is ErrorPattern.PHONETIC:
        return f'"{word}" doesn\'t spell the way it sounds. Picture the word and remember its tricky letters.'
    if pattern is ErrorPattern.ENDING:
        return f'Look closely at how "{word}" ends. Similar-sounding endings are spelled differently.'
    if pattern is ErrorPattern.VOWEL_SWAP:
        return f'Remember: "I before E, except after C" - but there are exceptions! Check the vowels in "{word}".'
    if pattern is ErrorPattern.SILENT_LETTER:
        return f'"{word}" has a sneaky silent letter! Some letters hide but are important for spelling.'
    return f'Watch where the beginning of "{word}" connects to the rest of the word - sometimes letters double up!'


def get_pattern_name(pattern: ErrorPattern) -> str:
    """Short human label for a pattern."""
    return PATTERN_NAMES[pattern]


def get_pattern_description(pattern: ErrorPattern) -> str:
    return PATTERN_DESCRIPTIONS[pattern]


def get_pattern_hint(pattern: ErrorPattern, word: str) -> str:
    """Practice tip for a pattern, worded for the given word."""
    return _hint_text(pattern, normalize_word(word))


def _differing_positions(typed: str, target: str) -> List[int]:
    return [i for i, (a, b) in enumerate(zip(typed, target)) if a != b]


def _collapse_runs(text: str) -> str:
    return "".join(letter for letter, _ in groupby(text))


def _replacements(text: str, old: str, new: str) -> Iterable[str]:
    """Every string made by replacing one occurrence of old with new."""
    start = text.find(old)
    while start != -1:
        yield text[:start] + new + text[start + len(old):]
        start = text.find(old, start + 1)


def has_transposition(typed: str, target: str) -> bool:
    """Two adjacent letters swapped: teh -> the."""
    if len(typed) != len(target):
        return False
    diffs = _differing_positions(typed, target)
    if len(diffs) != 2 or diffs[1] - diffs[0] != 1:
        return False
    i, j = diffs
    return typed[i] == target[j] and typed[j] == target[i]


def has_missing_letter(typed: str, target: str) -> bool:
    """Removing one letter from the target gives what was typed."""
    if len(typed) != len(target) - 1:
        return False
    return any(target[:i] + target[i + 1:] == typed for i in range(len(target)))


def has_extra_letter(typed: str, target: str) -> bool:
    return has_missing_letter(target, typed)


def has_double_letter_error(typed: str, target: str) -> bool:
    """Only the length of repeated-letter runs differs: begining -> beginning."""
    return typed != target and _collapse_runs(typed) == _collapse_runs(target)


def has_vowel_swap(typed: str, target: str) -> bool:
    """Vowels in the wrong order: recieve -> receive."""
    if len(typed) == len(target):
        diffs = _differing_positions(typed, target)
        if len(diffs) == 2 and diffs[1] - diffs[0] <= 2:
            i, j = diffs
            letters = {typed[i], typed[j], target[i], target[j]}
            if letters <= VOWELS and typed[i] == target[j] and typed[j] == target[i]:
                return True
    for old, new in (("ie", "ei"), ("ei", "ie")):
        if any(fixed == target for fixed in _replacements(typed, old, new)):
            return True
    return False


def has_silent_letter_error(typed: str, target: str) -> bool:
    """A silent letter of the target was left out: nife -> knife."""
    base = levenshtein_distance(typed, target)
    for silent, clusters in SILENT_PATTERNS.items():
        for cluster in clusters:
            if cluster not in target or cluster in typed:
                continue
            spoken = cluster.replace(silent, "", 1)
            for without in _replacements(target, cluster, spoken):
                if levenshtein_distance(typed, without) < base:
                    return True
    # Silent e at the end
    return (
        target.endswith("e")
        and not typed.endswith("e")
        and len(typed) == len(target) - 1
    )


def has_phonetic_error(typed: str, target: str) -> bool:
    """A sound-alike spelling was used: enuff -> enough, kut -> cut."""
    base = levenshtein_distance(typed, target)
    for first, second in PHONETIC_PAIRS:
        for used, meant in ((first, second), (second, first)):
            if used not in typed or meant not in target:
                continue
            for fixed in _replacements(typed, used, meant):
                if fixed == target or levenshtein_distance(fixed, target) < base:
                    return True
    return False


def has_ending_error(typed: str, target: str) -> bool:
    """Confused ending or a suffix rule broken: stasion, hapyness, runing."""
    for group in ENDING_GROUPS:
        for meant in group:
            if not target.endswith(meant):
                continue
            stem = target[:-len(meant)]
            for used in group:
                if used != meant and typed.endswith(used) and typed[:-len(used)] == stem:
                    return True

    for suffix in SUFFIXES:
        if not (target.endswith(suffix) and typed.endswith(suffix)):
            continue
        target_base = target[:-len(suffix)]
        typed_base = typed[:-len(suffix)]
        if not target_base or not typed_base:
            continue
        # y -> i before the suffix
        if typed_base.endswith("y") and target_base.endswith("i"):
            return True
        # Consonant doubled before the suffix
        if len(target_base) > len(typed_base) >= 1 and len(target_base) >= 2:
            if target_base[-1] == target_base[-2] and typed_base == target_base[:-1]:
                return True
        # Silent e dropped before the suffix
        if typed_base.endswith("e") and not target_base.endswith("e") and typed_base[:-1] == target_base:
            return True
    return False


def has_prefix_error(typed: str, target: str) -> bool:
    """The prefix or its join with the stem is wrong: unecessary -> unnecessary."""
    for prefix in PREFIXES:
        if not target.startswith(prefix):
            continue
        rest = target[len(prefix):]
        if len(rest) < 3:
            continue
        # Doubled letter where prefix meets stem
        if rest[0] == prefix[-1] and typed.startswith(prefix[:-1]) and not typed.startswith(prefix + rest[0]):
            return True
        # Stem intact, prefix misspelled
        if typed.endswith(rest) and not typed.startswith(prefix):
            extra = len(typed) - len(rest)
            if 0 < extra <= len(prefix) + 1:
                return True
    return False


_CHECKS = (
    (ErrorPattern.TRANSPOSITION, has_transposition),
    (ErrorPattern.MISSING_LETTER, has_missing_letter),
    (ErrorPattern.EXTRA_LETTER, has_extra_letter),
    (ErrorPattern.DOUBLE_LETTER, has_double_letter_error),
    (ErrorPattern.PHONETIC, has_phonetic_error),
    (ErrorPattern.ENDING, has_ending_error),
    (ErrorPattern.VOWEL_SWAP, has_vowel_swap),
    (ErrorPattern.SILENT_LETTER, has_silent_letter_error),
    (ErrorPattern.PREFIX, has_prefix_error),
)


def analyze_error(typed: str, target: str) -> FrozenSet[ErrorPattern]:
    """Return every pattern that matches the mistake.

    Comparison is case-insensitive. Empty input or a correct spelling
    yields an empty set.
    """
    typed = normalize_word(typed)
    target = normalize_word(target)
    if not typed or not target or typed == target:
        return frozenset()
    return frozenset(pattern for pattern, check in _CHECKS if check(typed, target))


def sort_patterns(patterns: Iterable[ErrorPattern]) -> List[ErrorPattern]:
    """Stable display order for a pattern set."""
    return sorted(patterns, key=_PATTERN_ORDER.__getitem__)


@dataclass
class StrugglingWord:
    """A word the learner keeps getting wrong, with its diagnosis."""
    word: WordRecord
    attempts: int
    correct: int
    accuracy: float
    patterns: List[ErrorPattern] = field(default_factory=list)
    recent_mistakes: List[str] = field(default_factory=list)

    @property
    def accuracy_percent(self) -> int:
        return round(self.accuracy * 100)

    @property
    def pattern_names(self) -> List[str]:
        return [get_pattern_name(pattern) for pattern in self.patterns]


def get_struggling_words(
    words: Iterable[WordRecord],
    min_attempts: Optional[int] = None,
    max_accuracy: Optional[float] = None,
) -> List[StrugglingWord]:
    """Active words with enough attempts and accuracy below the threshold.

    Sorted by ascending accuracy, ties broken by word text.
    """
    analysis = settings.analysis
    min_attempts = analysis.struggling_min_attempts if min_attempts is None else min_attempts
    max_accuracy = analysis.struggling_max_accuracy if max_accuracy is None else max_accuracy

    struggling: List[StrugglingWord] = []
    for word in words:
        if not word.is_active:
            continue
        history = word.attempt_history or []
        if len(history) < min_attempts:
            continue
        correct = sum(1 for attempt in history if attempt.was_correct)
        accuracy = correct / len(history)
        if accuracy >= max_accuracy:
            continue

        mistakes = [attempt for attempt in history if not attempt.was_correct]
        counts: Counter = Counter()
        for attempt in mistakes:
            counts.update(analyze_error(attempt.typed_text, word.text))
        top = sorted(counts.items(), key=lambda item: (-item[1], _PATTERN_ORDER[item[0]]))
        recent = [attempt.typed_text for attempt in reversed(mistakes)][:analysis.max_recent_mistakes]

        struggling.append(
            StrugglingWord(
                word=word,
                attempts=len(history),
                correct=correct,
                accuracy=accuracy,
                patterns=[pattern for pattern, _ in top[:analysis.max_patterns_per_word]],
                recent_mistakes=recent,
            )
        )

    struggling.sort(key=lambda item: (item.accuracy, item.word.text))
    logger.debug(f"Found {len(struggling)} struggling words")
    return struggling


@dataclass
class ErrorPatternStats:
    """How often a pattern shows up across a word bank."""
    count: int = 0
    last_occurrence: Optional[datetime] = None
    examples: List[Tuple[str, str, datetime]] = field(default_factory=list)


MAX_PATTERN_EXAMPLES = 5


def summarize_error_patterns(words: Iterable[WordRecord]) -> Dict[ErrorPattern, ErrorPatternStats]:
    """Pattern statistics derived from every incorrect attempt in the history."""
    stats = {pattern: ErrorPatternStats() for pattern in ErrorPattern}
    mistakes = []
    for word in words:
        for attempt in word.attempt_history or []:
            if not attempt.was_correct:
                mistakes.append((attempt.timestamp, word.text, attempt.typed_text))
    # Newest first so the example lists hold the most recent mistakes
    mistakes.sort(reverse=True)
    for timestamp, text, typed in mistakes:
        for pattern in analyze_error(typed, text):
            entry = stats[pattern]
            entry.count += 1
            if entry.last_occurrence is None:
                entry.last_occurrence = timestamp
            if len(entry.examples) < MAX_PATTERN_EXAMPLES:
                entry.examples.append((text, typed, timestamp))
    return stats
