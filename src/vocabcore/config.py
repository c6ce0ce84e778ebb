"""Configuration settings for the review engine."""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Leitner box settings
REPETITION_INTERVALS = [1, 3, 7, 14, 30]  # days between reviews, box 1..5
MAX_BOX = len(REPETITION_INTERVALS)

# Placeholder glosses used when the word store runs out of distractors
FALLBACK_MEANINGS = [
    "synonym",
    "antonym",
    "similar meaning",
    "different meaning",
    "related meaning",
    "close meaning",
]


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocabcore.db")
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
class ReviewSettings:
    """Quiz-mode review settings."""
    intervals: list[int] = field(default_factory=lambda: list(REPETITION_INTERVALS))
    max_box: int = MAX_BOX
    questions_per_type: int = int(os.getenv("QUESTIONS_PER_TYPE", "5"))
    time_limit_sec: int = int(os.getenv("REVIEW_TIME_LIMIT_SEC", "1080"))  # 18 minutes
    pass_score: int = int(os.getenv("REVIEW_PASS_SCORE", "70"))  # percent
    difficult_threshold: int = int(os.getenv("DIFFICULT_THRESHOLD", "3"))
    default_limit: int = int(os.getenv("REVIEW_DEFAULT_LIMIT", "15"))
    distractor_count: int = 3
    fallback_meanings: list[str] = field(default_factory=lambda: list(FALLBACK_MEANINGS))

    @property
    def max_questions(self) -> int:
        """Upper bound of questions in one review session (three question types)."""
        return self.questions_per_type * 3


@dataclass
class FlashcardSettings:
    """Flashcard learning session settings."""
    timeout_minutes: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))
    cleanup_days: int = int(os.getenv("SESSION_CLEANUP_DAYS", "30"))
    speed_learner_seconds: float = 10.0


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_review_settings() -> ReviewSettings:
    """Get review settings."""
    return ReviewSettings()


def get_flashcard_settings() -> FlashcardSettings:
    """Get flashcard settings."""
    return FlashcardSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    review: ReviewSettings = field(default_factory=get_review_settings)
    flashcard: FlashcardSettings = field(default_factory=get_flashcard_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if len(self.review.intervals) != self.review.max_box:
            raise ValueError("Repetition intervals must cover every Leitner box")

        if any(days < 1 for days in self.review.intervals):
            raise ValueError("Repetition intervals must be positive")

        if self.review.questions_per_type < 1:
            raise ValueError("QUESTIONS_PER_TYPE must be positive")

        if self.review.pass_score < 0 or self.review.pass_score > 100:
            raise ValueError("REVIEW_PASS_SCORE must be between 0 and 100")

        if self.review.difficult_threshold < 1:
            raise ValueError("DIFFICULT_THRESHOLD must be positive")

        if len(self.review.fallback_meanings) < self.review.distractor_count:
            raise ValueError("Not enough fallback meanings for multiple choice distractors")

        if self.flashcard.timeout_minutes < 1:
            raise ValueError("SESSION_TIMEOUT_MINUTES must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
