"""Exceptions raised by the spelling engine."""


class SpellCoachError(Exception):
    """Base class for engine errors."""


class InsufficientWordsError(SpellCoachError):
    """Not enough active words exist to start a practice session."""

    def __init__(self, available: int, minimum: int):
        self.available = available
        self.minimum = minimum
        super().__init__(
            f"Need at least {minimum} active words to start a session, found {available}"
        )


class InvalidWordError(SpellCoachError, ValueError):
    """Word text failed validation."""


class WordNotFoundError(SpellCoachError, LookupError):
    """Word does not exist in the learner's word bank."""


class LearnerNotFoundError(SpellCoachError, LookupError):
    """Learner does not exist."""
