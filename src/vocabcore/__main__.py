"""Command line entry point: set up the database and print a user's review dashboard."""
import argparse
import logging
import sys
from typing import List, Optional

from vocabcore.config import settings
from vocabcore.logging_config import setup_logging
from vocabcore.models.base import SessionLocal, init_db
from vocabcore.monitoring import start_monitoring
from vocabcore.services.flashcard_service import FlashcardService
from vocabcore.services.progress_tracker import ProgressTracker
from vocabcore.services.review_service import ReviewService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vocabcore", description="Spaced repetition review engine")
    parser.add_argument("--user", type=int, help="print review statistics for this user id")
    parser.add_argument("--expire", action="store_true", help="expire timed-out flashcard sessions")
    parser.add_argument("--cleanup", action="store_true", help="delete old completed flashcard sessions")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    return parser.parse_args(argv)


def print_dashboard(review_service: ReviewService, tracker: ProgressTracker, user_id: int) -> None:
    stats = review_service.review_stats(user_id)
    learning = tracker.learning_statistics(user_id)
    print(f"User {user_id}")
    print(f"  overdue: {stats.overdue_count}  due today: {stats.today_count}  "
          f"difficult: {stats.difficult_count}  to review: {stats.total_review_count}")
    print(f"  words: {learning.total_words}  mastered: {learning.mastered_words}  "
          f"learning: {learning.learning_words}  accuracy: {learning.accuracy:.1f}%")
    print("  boxes: " + ", ".join(f"{box}={count}" for box, count in learning.box_statistics.items()))
    last = review_service.last_review_date(user_id)
    if last is not None:
        print(f"  last review: {last}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging("Starting vocabcore ...", level=args.log_level)

    init_db()
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info(f"Metrics server listening on port {settings.monitoring.port}")

    db = SessionLocal()
    try:
        flashcards = FlashcardService(db)
        if args.expire:
            flashcards.expire_timed_out_sessions()
        if args.cleanup:
            flashcards.cleanup_old_sessions()
        if args.user is not None:
            review_service = ReviewService(db)
            print_dashboard(review_service, review_service.tracker, args.user)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
