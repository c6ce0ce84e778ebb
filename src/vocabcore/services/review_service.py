"""Review service tying selection, building, evaluation and scoring together."""
import logging
import random
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from vocabcore.config import settings
from vocabcore.exceptions import EmptyInputError, NotFoundError
from vocabcore.models.base import utcnow
from vocabcore.models.models import (
    QuestionResult,
    ReviewAttempt,
    ReviewQuestion,
    ReviewSession,
    Word,
)
from vocabcore.models.review_models import AnswerFeedback, ReviewResult, ReviewStats
from vocabcore.services.answer_evaluator import AnswerEvaluator
from vocabcore.services.progress_tracker import ProgressTracker
from vocabcore.services.session_aggregator import SessionAggregator
from vocabcore.services.session_builder import ReviewSessionBuilder
from vocabcore.services.word_selector import DueWordSelector
from vocabcore.services.word_store import WordStore

logger = logging.getLogger(__name__)


class ReviewService:
    """Entry point for the quiz review flow."""

    def __init__(
        self,
        db: Session,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the service and its collaborators on one database session."""
        self.db = db
        self.clock = clock
        self.rng = rng or random.Random()
        self.word_store = WordStore(db, rng=self.rng)
        self.tracker = ProgressTracker(db, clock=clock)
        self.selector = DueWordSelector(db, clock=clock)
        self.builder = ReviewSessionBuilder(db, word_store=self.word_store, rng=self.rng, clock=clock)
        self.evaluator = AnswerEvaluator(db, tracker=self.tracker, clock=clock)
        self.aggregator = SessionAggregator(db, clock=clock)

    # Selection and building

    def select_review_words(self, user_id: int, limit: Optional[int] = None) -> List[Word]:
        """Words the user should review next."""
        if limit is None:
            limit = settings.review.default_limit
        return self.selector.select_for_review(user_id, limit)

    def build_review_session(self, user_id: int, words: Sequence[Word]) -> ReviewSession:
        """Build a quiz from the given words."""
        return self.builder.build(user_id, words)

    def create_review_for_user(self, user_id: int, limit: Optional[int] = None) -> ReviewSession:
        """Select due words and build a quiz from them in one step."""
        words = self.select_review_words(user_id, limit)
        if not words:
            raise EmptyInputError(f"No words to review for user {user_id}")
        return self.build_review_session(user_id, words)

    def get_review_session(self, session_id: int) -> ReviewSession:
        """Get a review session by its ID."""
        session = self.db.get(ReviewSession, session_id)
        if session is None:
            raise NotFoundError("ReviewSession", session_id)
        return session

    def get_review_questions(self, session_id: int) -> List[ReviewQuestion]:
        """Questions of a session in session order."""
        return list(self.get_review_session(session_id).questions)

    def get_question(self, question_id: int) -> ReviewQuestion:
        """Get a review question by its ID."""
        question = self.db.get(ReviewQuestion, question_id)
        if question is None:
            raise NotFoundError("ReviewQuestion", question_id)
        return question

    # Attempts

    def start_attempt(self, user_id: int, session_id: int) -> ReviewAttempt:
        """Open a new scored pass through a session."""
        session = self.get_review_session(session_id)
        attempt = ReviewAttempt(
            user_id=user_id,
            session_id=session.id,
            started_at=self.clock(),
            score=0,
            max_score=session.num_items,
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        logger.info(f"User {user_id} started attempt {attempt.id} on review session {session.id}")
        return attempt

    def get_attempt(self, attempt_id: int) -> ReviewAttempt:
        """Get an attempt by its ID."""
        attempt = self.db.get(ReviewAttempt, attempt_id)
        if attempt is None:
            raise NotFoundError("ReviewAttempt", attempt_id)
        return attempt

    def submit_answer(self, attempt_id: int, question_id: int, answer: Optional[str]) -> QuestionResult:
        """Score one answer and advance the word's progress."""
        attempt = self.get_attempt(attempt_id)
        question = self.get_question(question_id)
        return self.evaluator.evaluate(attempt, question, answer)

    def submit_answer_with_feedback(self, attempt_id: int, question_id: int, answer: Optional[str]) -> AnswerFeedback:
        """Like submit_answer, with the expected solution for display."""
        result = self.submit_answer(attempt_id, question_id, answer)
        return self.evaluator.feedback(self.get_question(question_id), result)

    def finalize_attempt(self, attempt_id: int) -> ReviewResult:
        """Close an attempt and compute its result; safe to call again."""
        return self.aggregator.finalize(self.get_attempt(attempt_id))

    # Dashboard helpers

    def review_stats(self, user_id: int) -> ReviewStats:
        """Overdue, due-today and difficult counters of a user."""
        return self.selector.review_stats(user_id)

    def last_attempt(self, user_id: int) -> Optional[ReviewAttempt]:
        """Most recently started attempt of a user."""
        return (
            self.db.query(ReviewAttempt)
            .filter(ReviewAttempt.user_id == user_id)
            .order_by(ReviewAttempt.started_at.desc(), ReviewAttempt.id.desc())
            .first()
        )

    def last_review_result(self, user_id: int) -> Optional[ReviewResult]:
        """Result of the latest finalized attempt, if any."""
        attempt = (
            self.db.query(ReviewAttempt)
            .filter(
                ReviewAttempt.user_id == user_id,
                ReviewAttempt.submitted_at.isnot(None),
            )
            .order_by(ReviewAttempt.submitted_at.desc(), ReviewAttempt.id.desc())
            .first()
        )
        if attempt is None:
            return None
        return self.aggregator.finalize(attempt)

    def last_review_date(self, user_id: int) -> Optional[str]:
        """Human readable age of the latest attempt."""
        attempt = self.last_attempt(user_id)
        if attempt is None:
            return None
        days = (self.clock().date() - attempt.started_at.date()).days
        if days == 0:
            return "Today"
        if days == 1:
            return "1 day ago"
        return f"{days} days ago"
