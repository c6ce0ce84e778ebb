"""Selection of the words a user should review next."""
import logging
from datetime import datetime
from typing import Callable, List

from sqlalchemy.orm import Session

from vocabcore.models.base import utcnow
from vocabcore.models.models import ProgressStatus, Word, WordProgress
from vocabcore.models.review_models import ReviewStats
from vocabcore.services.progress_tracker import ProgressTracker, is_due

logger = logging.getLogger(__name__)

RECENT_MIN_BOX = 2
RECENT_MAX_BOX = 4


def _whole_days(later: datetime, earlier: datetime) -> int:
    return max(0, (later - earlier).days)


def priority_score(progress: WordProgress, now: datetime) -> int:
    """Urgency of a review, higher means sooner.

    Overdue days weigh the most, then lifetime mistakes, then a low box,
    then the time since the last review.
    """
    score = 0
    if is_due(progress, now):
        score += 10 * _whole_days(now, progress.next_review_at)
    score += 5 * progress.wrong_count
    score += 2 * (6 - progress.box)
    if progress.last_reviewed_at is not None:
        score += _whole_days(now, progress.last_reviewed_at)
    return score


def is_urgent(progress: WordProgress, now: datetime) -> bool:
    """Overdue, scheduled for today, or never promoted out of box 1."""
    if is_due(progress, now):
        return True
    if progress.next_review_at is not None and progress.next_review_at.date() == now.date():
        return True
    return progress.box == 1


class DueWordSelector:
    """Ranks a user's words for the next review session."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        """Initialize the selector with a database session."""
        self.db = db
        self.clock = clock
        self.tracker = ProgressTracker(db, clock=clock)

    def urgent_progress(self, user_id: int, limit: int) -> List[WordProgress]:
        """Tier 1: overdue, due today or box 1, most urgent first."""
        now = self.clock()
        candidates = [p for p in self.tracker.list_progress(user_id) if is_urgent(p, now)]
        ranked = sorted(candidates, key=lambda p: priority_score(p, now), reverse=True)
        logger.info(f"Found {len(candidates)} urgent words for user {user_id}")
        return ranked[:limit]

    def recent_progress(self, user_id: int, limit: int) -> List[WordProgress]:
        """Tier 2: words in the middle boxes, most recently reviewed first."""
        candidates = [
            p
            for p in self.tracker.list_progress(user_id)
            if RECENT_MIN_BOX <= p.box <= RECENT_MAX_BOX
        ]
        reviewed = [p for p in candidates if p.last_reviewed_at is not None]
        never_reviewed = [p for p in candidates if p.last_reviewed_at is None]
        reviewed.sort(key=lambda p: p.last_reviewed_at, reverse=True)
        return (reviewed + never_reviewed)[:limit]

    def select_progress(self, user_id: int, limit: int) -> List[WordProgress]:
        """Progress records to review, first non-empty tier wins."""
        if limit <= 0:
            return []
        urgent = self.urgent_progress(user_id, limit)
        if urgent:
            return urgent
        recent = self.recent_progress(user_id, limit)
        if recent:
            logger.info(f"No urgent words for user {user_id}, using {len(recent)} recently learned words")
            return recent
        logger.info(f"No words available for review for user {user_id}")
        return []

    def select_for_review(self, user_id: int, limit: int) -> List[Word]:
        """Words the user should review next, at most `limit`."""
        return [progress.word for progress in self.select_progress(user_id, limit)]

    def review_stats(self, user_id: int) -> ReviewStats:
        """Overdue, due-today and difficult counters."""
        now = self.clock()
        all_progress = self.tracker.list_progress(user_id)
        overdue = sum(1 for p in all_progress if is_due(p, now))
        today = sum(
            1
            for p in all_progress
            if p.next_review_at is not None and p.next_review_at.date() == now.date()
        )
        difficult = sum(1 for p in all_progress if p.status == ProgressStatus.DIFFICULT)
        return ReviewStats(
            overdue_count=overdue,
            today_count=today,
            difficult_count=difficult,
            total_review_count=overdue + today,
        )
