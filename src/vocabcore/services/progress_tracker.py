"""Leitner box progress of words per user."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from vocabcore import monitoring
from vocabcore.config import settings
from vocabcore.exceptions import NotFoundError
from vocabcore.models.base import utcnow
from vocabcore.models.models import ProgressStatus, Word, WordProgress
from vocabcore.models.review_models import LearningStatistics

logger = logging.getLogger(__name__)

MASTERED_BOX = 4


def interval_for_box(box: int, intervals: Optional[Sequence[int]] = None) -> timedelta:
    """Time until the next review for a word sitting in `box`."""
    intervals = intervals or settings.review.intervals
    if box < 1 or box > len(intervals):
        box = 1
    return timedelta(days=intervals[box - 1])


def new_progress(user_id: int, word_id: int, now: datetime) -> WordProgress:
    """Progress record for a word seen for the first time."""
    return WordProgress(
        user_id=user_id,
        word_id=word_id,
        box=1,
        streak=0,
        wrong_count=0,
        status=ProgressStatus.LEARNING,
        first_learned_at=now,
        last_reviewed_at=now,
        next_review_at=now + interval_for_box(1),
    )


def record_outcome(
    progress: WordProgress,
    correct: bool,
    now: datetime,
    difficult_threshold: Optional[int] = None,
) -> WordProgress:
    """Apply one answer to a progress record.

    A correct answer moves the word one box up (capped at the last box) and
    schedules it by the new box. A wrong answer sends it back to box 1.
    """
    max_box = len(settings.review.intervals)
    if difficult_threshold is None:
        difficult_threshold = settings.review.difficult_threshold

    if correct:
        progress.streak = (progress.streak or 0) + 1
        progress.box = min((progress.box or 1) + 1, max_box)
        progress.status = (
            ProgressStatus.MASTERED if progress.box >= MASTERED_BOX else ProgressStatus.REVIEWING
        )
        progress.next_review_at = now + interval_for_box(progress.box)
    else:
        progress.streak = 0
        progress.wrong_count = (progress.wrong_count or 0) + 1
        progress.box = 1
        progress.status = (
            ProgressStatus.DIFFICULT
            if progress.wrong_count >= difficult_threshold
            else ProgressStatus.LEARNING
        )
        progress.next_review_at = now + interval_for_box(1)

    progress.last_reviewed_at = now
    return progress


def is_due(progress: WordProgress, now: datetime) -> bool:
    """Whether the scheduled review time has passed."""
    return progress.next_review_at is not None and now > progress.next_review_at


class ProgressTracker:
    """Service owning the per-user word progress records."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        """Initialize the service with a database session."""
        self.db = db
        self.clock = clock

    def get_progress(self, user_id: int, word_id: int) -> Optional[WordProgress]:
        """Get the progress of a user on a word."""
        return (
            self.db.query(WordProgress)
            .filter(WordProgress.user_id == user_id, WordProgress.word_id == word_id)
            .first()
        )

    def list_progress(self, user_id: int) -> List[WordProgress]:
        """Get all progress records of a user."""
        return (
            self.db.query(WordProgress)
            .filter(WordProgress.user_id == user_id)
            .order_by(WordProgress.id)
            .all()
        )

    def _get_or_create(self, user_id: int, word_id: int) -> WordProgress:
        progress = self.get_progress(user_id, word_id)
        if progress is None:
            if self.db.get(Word, word_id) is None:
                raise NotFoundError("Word", word_id)
            progress = new_progress(user_id, word_id, self.clock())
            self.db.add(progress)
            self.db.flush()
            logger.info(f"Created progress for user {user_id} word {word_id}")
        return progress

    def start_learning(self, user_id: int, word_id: int) -> WordProgress:
        """Create the progress record on first exposure, or return the existing one."""
        progress = self._get_or_create(user_id, word_id)
        self.db.commit()
        self.db.refresh(progress)
        return progress

    def record(self, user_id: int, word_id: int, correct: bool, commit: bool = True) -> WordProgress:
        """Apply an answer to the progress of a word.

        With commit=False the change is only added to the session so the
        caller can commit it together with its own writes.
        """
        progress = self._get_or_create(user_id, word_id)
        old_box = progress.box
        record_outcome(progress, correct, self.clock())
        monitoring.box_transitions.labels(outcome="correct" if correct else "wrong").inc()
        logger.info(
            f"User {user_id} answered {'correctly' if correct else 'incorrectly'} "
            f"word {word_id} (box {old_box} -> {progress.box}, streak {progress.streak})"
        )
        if commit:
            self.db.commit()
            self.db.refresh(progress)
        return progress

    def reset_progress(self, user_id: int, word_id: int) -> WordProgress:
        """Put a word back to its initial learning state."""
        progress = self.get_progress(user_id, word_id)
        if progress is None:
            raise NotFoundError("WordProgress", (user_id, word_id))

        now = self.clock()
        progress.box = 1
        progress.status = ProgressStatus.LEARNING
        progress.streak = 0
        progress.wrong_count = 0
        progress.last_reviewed_at = now
        progress.next_review_at = now + interval_for_box(1)
        self.db.commit()
        self.db.refresh(progress)
        logger.info(f"User {user_id} reset progress for word {word_id}")
        return progress

    def due_progress(self, user_id: int) -> List[WordProgress]:
        """Progress records whose review time has passed."""
        now = self.clock()
        return [p for p in self.list_progress(user_id) if is_due(p, now)]

    def difficult_words(
        self, user_id: int, min_wrong_count: Optional[int] = None, limit: Optional[int] = None
    ) -> List[WordProgress]:
        """Words answered wrongly at least `min_wrong_count` times, worst first."""
        if min_wrong_count is None:
            min_wrong_count = settings.review.difficult_threshold
        query = (
            self.db.query(WordProgress)
            .filter(
                WordProgress.user_id == user_id,
                WordProgress.wrong_count >= min_wrong_count,
            )
            .order_by(WordProgress.wrong_count.desc(), WordProgress.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def mastered_words(self, user_id: int) -> List[WordProgress]:
        """Words in mastered status."""
        return (
            self.db.query(WordProgress)
            .filter(
                WordProgress.user_id == user_id,
                WordProgress.status == ProgressStatus.MASTERED,
            )
            .order_by(WordProgress.box.desc(), WordProgress.id)
            .all()
        )

    def learning_statistics(self, user_id: int) -> LearningStatistics:
        """Aggregate counters over all progress of a user."""
        all_progress = self.list_progress(user_id)
        now = self.clock()

        # Attempts are estimated from the current streak and lifetime wrong answers
        total_attempts = 0
        total_wrong = 0
        for progress in all_progress:
            attempts = progress.streak + progress.wrong_count
            if attempts > 0:
                total_attempts += attempts
                total_wrong += progress.wrong_count
        accuracy = (total_attempts - total_wrong) * 100.0 / total_attempts if total_attempts else 0.0

        boxes = Counter(progress.box for progress in all_progress)
        return LearningStatistics(
            total_words=len(all_progress),
            words_to_review=sum(1 for p in all_progress if is_due(p, now)),
            mastered_words=sum(1 for p in all_progress if p.status == ProgressStatus.MASTERED),
            learning_words=sum(1 for p in all_progress if p.status == ProgressStatus.LEARNING),
            accuracy=accuracy,
            box_statistics={box: boxes.get(box, 0) for box in range(1, len(settings.review.intervals) + 1)},
        )
