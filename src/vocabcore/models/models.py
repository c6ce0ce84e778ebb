"""Database models for the review engine."""
import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from vocabcore.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class ProgressStatus(str, enum.Enum):
    """Learning status of a word for one user."""
    NEW = "NEW"
    LEARNING = "LEARNING"
    REVIEWING = "REVIEWING"
    MASTERED = "MASTERED"
    DIFFICULT = "DIFFICULT"


class QuestionType(str, enum.Enum):
    """Review question formats."""
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_IN_BLANK = "FILL_IN_BLANK"


class Difficulty(str, enum.Enum):
    """Difficulty attached to a question type."""
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class SessionStatus(str, enum.Enum):
    """Flashcard session lifecycle."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class LearningMode(str, enum.Enum):
    """How the words of a flashcard session were picked."""
    ALPHABETICAL = "ALPHABETICAL"
    TOPICS = "TOPICS"
    CUSTOM = "CUSTOM"
    REVIEW = "REVIEW"


class AnswerType(str, enum.Enum):
    """Self-reported flashcard answer."""
    CORRECT = "CORRECT"
    WRONG = "WRONG"
    SKIP = "SKIP"


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.EXPIRED, SessionStatus.CANCELLED}
)


class Word(Base, TimestampMixin):
    """Dictionary word, read-only for the review engine."""

    __tablename__ = "words"

    id = Column(Integer, primary_key=True)
    text = Column(String, nullable=False, index=True)
    transcription = Column(String)
    part_of_speech = Column(String)
    level = Column(String)  # e.g., "A1", "B2"

    # Relationships
    glosses = relationship(
        "Gloss",
        order_by="Gloss.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def primary_meaning(self) -> Optional[str]:
        """Meaning of the first gloss, if any."""
        if not self.glosses:
            return None
        return self.glosses[0].meaning

    def __repr__(self) -> str:
        return f"<Word {self.id} {self.text!r}>"


class Gloss(Base):
    """A localized meaning of a word."""

    __tablename__ = "glosses"

    id = Column(Integer, primary_key=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False, index=True)
    order_index = Column(Integer, nullable=False, default=0)
    meaning = Column(String, nullable=False)
    definition = Column(String)


class WordProgress(Base, TimestampMixin):
    """Leitner state of one word for one user."""

    __tablename__ = "word_progress"
    __table_args__ = (UniqueConstraint("user_id", "word_id", name="uq_progress_user_word"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    box = Column(Integer, nullable=False, default=1)  # 1-5
    streak = Column(Integer, nullable=False, default=0)  # consecutive correct answers
    wrong_count = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(ProgressStatus, native_enum=False, length=10),
        nullable=False,
        default=ProgressStatus.LEARNING,
    )
    first_learned_at = Column(UTCDateTime)
    last_reviewed_at = Column(UTCDateTime)
    next_review_at = Column(UTCDateTime)

    # Relationships
    word = relationship("Word", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<WordProgress user={self.user_id} word={self.word_id} "
            f"box={self.box} status={self.status}>"
        )


class ReviewSession(Base, TimestampMixin):
    """A generated quiz."""

    __tablename__ = "review_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    title = Column(String, nullable=False)
    num_items = Column(Integer, nullable=False, default=0)
    time_limit_sec = Column(Integer, nullable=False)
    pass_score = Column(Integer, nullable=False)  # percent

    # Relationships
    questions = relationship(
        "ReviewQuestion",
        order_by="ReviewQuestion.session_order",
        cascade="all, delete-orphan",
    )


class ReviewQuestion(Base, TimestampMixin):
    """One question of a review session, stored in flat form."""

    __tablename__ = "review_questions"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("review_sessions.id"), nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    session_order = Column(Integer, nullable=False)
    question_type = Column(Enum(QuestionType, native_enum=False, length=20), nullable=False)
    prompt = Column(Text, nullable=False)
    options = Column(Text)  # JSON list, multiple choice only
    answer = Column(String, nullable=False)
    difficulty = Column(Enum(Difficulty, native_enum=False, length=10), nullable=False)

    # Relationships
    word = relationship("Word", lazy="joined")


class ReviewAttempt(Base, TimestampMixin):
    """One user's scored pass through a review session."""

    __tablename__ = "review_attempts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("review_sessions.id"), nullable=False)
    started_at = Column(UTCDateTime, nullable=False, default=utcnow)
    submitted_at = Column(UTCDateTime)
    score = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=0)
    duration_sec = Column(Integer)

    # Relationships
    session = relationship("ReviewSession")
    results = relationship(
        "QuestionResult",
        order_by="QuestionResult.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_finalized(self) -> bool:
        return self.submitted_at is not None


class QuestionResult(Base):
    """Outcome of one answered question, append-only."""

    __tablename__ = "question_results"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_result_attempt_question"),)

    id = Column(Integer, primary_key=True)
    attempt_id = Column(Integer, ForeignKey("review_attempts.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("review_questions.id"), nullable=False)
    is_correct = Column(Boolean, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    user_answer = Column(String)
    answered_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # Relationships
    question = relationship("ReviewQuestion", lazy="joined")


class LearningSession(Base, TimestampMixin):
    """Flashcard learning session."""

    __tablename__ = "learning_sessions"

    id = Column(Integer, primary_key=True)
    session_uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid4()))
    user_id = Column(Integer, nullable=False, index=True)
    learning_mode = Column(
        Enum(LearningMode, native_enum=False, length=20),
        nullable=False,
        default=LearningMode.REVIEW,
    )
    status = Column(
        Enum(SessionStatus, native_enum=False, length=20),
        nullable=False,
        default=SessionStatus.ACTIVE,
    )
    target_words = Column(Integer, nullable=False)
    actual_words = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    wrong_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    time_spent_sec = Column(Integer, nullable=False, default=0)
    started_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    last_activity_at = Column(UTCDateTime)
    expires_at = Column(UTCDateTime)

    # Relationships
    vocabularies = relationship(
        "SessionVocabulary",
        order_by="SessionVocabulary.order_index",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def can_resume(self, now: datetime) -> bool:
        return self.status in (SessionStatus.ACTIVE, SessionStatus.PAUSED) and not self.is_expired(now)

    @property
    def accuracy_percentage(self) -> float:
        total = self.correct_count + self.wrong_count
        if total == 0:
            return 0.0
        return self.correct_count * 100.0 / total

    @property
    def progress_percentage(self) -> int:
        if not self.target_words:
            return 0
        return self.actual_words * 100 // self.target_words

    @property
    def formatted_duration(self) -> str:
        if not self.time_spent_sec:
            return "0:00"
        minutes, seconds = divmod(self.time_spent_sec, 60)
        return f"{minutes}:{seconds:02d}"


class SessionVocabulary(Base):
    """A word inside a flashcard session, answered at most once."""

    __tablename__ = "session_vocabularies"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("learning_sessions.id"), nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    order_index = Column(Integer, nullable=False)
    user_answer = Column(Enum(AnswerType, native_enum=False, length=20))
    time_spent_sec = Column(Integer)
    answered_at = Column(UTCDateTime)

    # Relationships
    word = relationship("Word", lazy="joined")

    @property
    def is_answered(self) -> bool:
        return self.user_answer is not None
