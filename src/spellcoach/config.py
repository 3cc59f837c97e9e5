"""Configuration settings for the spelling engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Mastery policy
MIN_MASTERY_LEVEL = 0
MAX_MASTERY_LEVEL = 5
LEARNING_MAX_LEVEL = 1  # 0-1 learning, 2-4 reviewing, 5 mastered
MASTERY_STEP_UP = 1
MASTERY_STEP_DOWN = 1
MASTERED_DECAY_DAYS: Optional[int] = None  # no passive decay

# Days to wait after the last attempt before a word is due again, per level
REVIEW_INTERVALS_DAYS = [0, 1, 3, 7, 14, 30]

# Session composition
MAX_NEW_WORDS_PER_SESSION = 2
MAX_NEW_WORD_SHARE = 0.25  # of the session length, at least one word
MAX_LEARNING_BEFORE_PAUSE = 15  # no new words while this many are in learning
SPOT_CHECK_INTERVAL_DAYS = 7
SPOT_CHECKS_PER_SESSION = 1


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///spellcoach.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class MasterySettings:
    """Mastery update policy."""
    step_up: int = int(os.getenv("MASTERY_STEP_UP", str(MASTERY_STEP_UP)))
    step_down: int = int(os.getenv("MASTERY_STEP_DOWN", str(MASTERY_STEP_DOWN)))
    min_level: int = MIN_MASTERY_LEVEL
    max_level: int = MAX_MASTERY_LEVEL
    learning_max_level: int = LEARNING_MAX_LEVEL
    review_intervals_days: list[int] = field(default_factory=lambda: list(REVIEW_INTERVALS_DAYS))


@dataclass
class IntroductionSettings:
    """Gradual introduction settings."""
    max_new_words_per_day: int = int(os.getenv("MAX_NEW_WORDS_PER_DAY", "10"))
    max_learning_before_pause: int = int(
        os.getenv("MAX_LEARNING_BEFORE_PAUSE", str(MAX_LEARNING_BEFORE_PAUSE))
    )


@dataclass
class SessionSettings:
    """Practice session settings."""
    max_words_per_session: int = int(os.getenv("MAX_WORDS_PER_SESSION", "10"))
    min_words_per_session: int = int(os.getenv("MIN_WORDS_PER_SESSION", "5"))
    word_list_cache_seconds: float = float(os.getenv("WORD_LIST_CACHE_SECONDS", "30"))
    max_new_words_per_session: int = int(
        os.getenv("MAX_NEW_WORDS_PER_SESSION", str(MAX_NEW_WORDS_PER_SESSION))
    )
    max_new_word_share: float = float(os.getenv("MAX_NEW_WORD_SHARE", str(MAX_NEW_WORD_SHARE)))
    spot_check_interval_days: int = int(
        os.getenv("SPOT_CHECK_INTERVAL_DAYS", str(SPOT_CHECK_INTERVAL_DAYS))
    )
    spot_checks_per_session: int = int(
        os.getenv("SPOT_CHECKS_PER_SESSION", str(SPOT_CHECKS_PER_SESSION))
    )


@dataclass
class AnalysisSettings:
    """Struggling-word and recommendation thresholds."""
    struggling_min_attempts: int = int(os.getenv("STRUGGLING_MIN_ATTEMPTS", "3"))
    struggling_max_accuracy: float = float(os.getenv("STRUGGLING_MAX_ACCURACY", "0.5"))
    max_patterns_per_word: int = 2
    max_recent_mistakes: int = 3
    too_many_learning_words: int = MAX_LEARNING_BEFORE_PAUSE
    inactivity_warning_days: int = 3
    recent_mastery_days: int = 7


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_mastery_settings() -> MasterySettings:
    """Get mastery settings."""
    return MasterySettings()


def get_introduction_settings() -> IntroductionSettings:
    """Get introduction settings."""
    return IntroductionSettings()


def get_session_settings() -> SessionSettings:
    """Get session settings."""
    return SessionSettings()


def get_analysis_settings() -> AnalysisSettings:
    """Get analysis settings."""
    return AnalysisSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    mastery: MasterySettings = field(default_factory=get_mastery_settings)
    introduction: IntroductionSettings = field(default_factory=get_introduction_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    analysis: AnalysisSettings = field(default_factory=get_analysis_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.mastery.step_up < 1 or self.mastery.step_down < 1:
            raise ValueError("MASTERY_STEP_UP and MASTERY_STEP_DOWN must be positive")

        if len(self.mastery.review_intervals_days) != self.mastery.max_level + 1:
            raise ValueError("Review intervals must cover every mastery level")

        if self.introduction.max_new_words_per_day < 0:
            raise ValueError("MAX_NEW_WORDS_PER_DAY cannot be negative")

        if self.session.min_words_per_session < 1:
            raise ValueError("MIN_WORDS_PER_SESSION must be positive")

        if self.session.max_words_per_session < 1:
            raise ValueError("MAX_WORDS_PER_SESSION must be positive")

        if self.introduction.max_learning_before_pause < 1:
            raise ValueError("MAX_LEARNING_BEFORE_PAUSE must be positive")

        if self.session.max_new_words_per_session < 0 or self.session.spot_checks_per_session < 0:
            raise ValueError("Per-session word quotas cannot be negative")

        if not 0 <= self.session.max_new_word_share <= 1:
            raise ValueError("MAX_NEW_WORD_SHARE must be between 0 and 1")

        if not 0 <= self.analysis.struggling_max_accuracy <= 1:
            raise ValueError("STRUGGLING_MAX_ACCURACY must be between 0 and 1")


# Create global settings instance
settings = Settings()
settings.validate()
