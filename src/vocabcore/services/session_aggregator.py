"""Final scoring of review attempts and achievement badges."""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from vocabcore import monitoring
from vocabcore.config import settings
from vocabcore.models.base import utcnow
from vocabcore.models.models import ReviewAttempt
from vocabcore.models.review_models import ReviewResult

logger = logging.getLogger(__name__)

PERFECT_SCORE = "Perfect Score"
EXCELLENT = "Excellent"
GOOD_JOB = "Good Job"
SPEED_LEARNER = "Speed Learner"
NO_SKIP_CHALLENGE = "No Skip Challenge"


def achievements(
    accuracy: float,
    seconds_per_word: Optional[float] = None,
    skip_count: Optional[int] = None,
) -> List[str]:
    """Badges earned by a session.

    Only one accuracy badge is awarded. `skip_count` is given for flashcard
    sessions only, quizzes have no skips.
    """
    badges = []
    if accuracy >= 100.0:
        badges.append(PERFECT_SCORE)
    elif accuracy >= 90.0:
        badges.append(EXCELLENT)
    elif accuracy >= 75.0:
        badges.append(GOOD_JOB)

    if seconds_per_word is not None and seconds_per_word < settings.flashcard.speed_learner_seconds:
        badges.append(SPEED_LEARNER)

    if skip_count is not None and skip_count == 0:
        badges.append(NO_SKIP_CHALLENGE)
    return badges


class SessionAggregator:
    """Folds recorded question results into a final result."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        """Initialize the aggregator with a database session."""
        self.db = db
        self.clock = clock

    def finalize(self, attempt: ReviewAttempt) -> ReviewResult:
        """Close an attempt and compute its result.

        The first call stamps submission time, score and duration; later
        calls recompute the same result from the stored data.
        """
        mastered_words = []
        need_review_words = []
        for result in attempt.results:
            word = result.question.word if result.question is not None else None
            text = word.text if word is not None else "Unknown"
            if result.is_correct:
                mastered_words.append(text)
            else:
                need_review_words.append(text)

        if not attempt.is_finalized:
            now = self.clock()
            attempt.submitted_at = now
            attempt.score = len(mastered_words)
            attempt.duration_sec = max(0, int((now - attempt.started_at).total_seconds()))
            self.db.commit()
            self.db.refresh(attempt)
            monitoring.attempts_finalized.inc()
            monitoring.session_duration.labels(kind="review").observe(attempt.duration_sec)
            logger.info(
                f"Finalized attempt {attempt.id}: {attempt.score}/{attempt.max_score} "
                f"in {attempt.duration_sec}s"
            )

        total_questions = attempt.max_score or 0
        total_correct = len(mastered_words)
        duration_sec = attempt.duration_sec or 0
        accuracy = total_correct * 100.0 / total_questions if total_questions else 0.0
        answered = len(attempt.results)
        seconds_per_word = duration_sec / answered if answered else None
        pass_score = attempt.session.pass_score if attempt.session is not None else settings.review.pass_score

        return ReviewResult(
            attempt_id=attempt.id,
            total_correct=total_correct,
            total_questions=total_questions,
            mastered_words=mastered_words,
            need_review_words=need_review_words,
            duration_sec=duration_sec,
            accuracy=accuracy,
            passed=accuracy >= pass_score,
            achievements=achievements(accuracy, seconds_per_word),
        )
