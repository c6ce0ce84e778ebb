"""Checking of submitted answers against review questions."""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocabcore import monitoring
from vocabcore.exceptions import InvalidStateError, NotFoundError, VocabCoreError
from vocabcore.models.base import utcnow
from vocabcore.models.models import QuestionResult, ReviewAttempt, ReviewQuestion
from vocabcore.models.review_models import (
    AnswerFeedback,
    FillInBlank,
    MultipleChoice,
    Question,
    TrueFalse,
    question_from_row,
    question_type_of,
)
from vocabcore.services.progress_tracker import ProgressTracker
from vocabcore.services.word_store import WordStore

logger = logging.getLogger(__name__)


def check_answer(question: Question, raw_answer: Optional[str]) -> bool:
    """Whether a raw answer is correct. Blank answers are always wrong."""
    if raw_answer is None or not raw_answer.strip():
        return False
    answer = raw_answer.strip()

    if isinstance(question, MultipleChoice):
        try:
            return int(answer) == question.correct_index
        except ValueError:
            # Older clients send the option text instead of its index
            return answer.lower() == question.correct_text.strip().lower()
    if isinstance(question, TrueFalse):
        return answer.upper() == question.expected_answer
    if isinstance(question, FillInBlank):
        return answer.lower() == question.correct_word.strip().lower()
    raise TypeError(f"Not a question: {question!r}")


def build_feedback(question: Question, raw_answer: Optional[str], correct: bool, word: str, meaning: str) -> AnswerFeedback:
    """Explain the outcome of an answer with the expected solution."""
    feedback = AnswerFeedback(
        correct=correct,
        user_answer=raw_answer,
        question_type=question_type_of(question),
        word=word,
        meaning=meaning,
        explanation="",
    )
    if isinstance(question, MultipleChoice):
        feedback.correct_option_index = question.correct_index
        feedback.correct_option_text = question.correct_text
        expected = question.correct_text
    elif isinstance(question, TrueFalse):
        feedback.correct_true_false = question.expected_answer
        expected = question.expected_answer
    else:
        feedback.correct_word_answer = question.correct_word
        expected = question.correct_word
    feedback.explanation = "Correct!" if correct else f"Wrong! The correct answer is: {expected}"
    return feedback


class AnswerEvaluator:
    """Scores answers and advances word progress in one unit of work."""

    def __init__(
        self,
        db: Session,
        tracker: Optional[ProgressTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the evaluator with a database session."""
        self.db = db
        self.clock = clock
        self.tracker = tracker or ProgressTracker(db, clock=clock)

    def _ensure_answerable(self, attempt: ReviewAttempt, question: ReviewQuestion) -> None:
        if attempt.is_finalized:
            raise InvalidStateError(f"Attempt {attempt.id} is already finalized")
        if question.session_id != attempt.session_id:
            raise NotFoundError("ReviewQuestion", question.id)
        already = (
            self.db.query(QuestionResult)
            .filter(
                QuestionResult.attempt_id == attempt.id,
                QuestionResult.question_id == question.id,
            )
            .first()
        )
        if already is not None:
            raise InvalidStateError(f"Question {question.id} already answered in attempt {attempt.id}")

    def evaluate(self, attempt: ReviewAttempt, question: ReviewQuestion, raw_answer: Optional[str]) -> QuestionResult:
        """Record the result of an answer and update the word's progress."""
        self._ensure_answerable(attempt, question)

        typed = question_from_row(question)
        correct = check_answer(typed, raw_answer)
        score = 1 if correct else 0

        attempt_id, question_id = attempt.id, question.id
        result = QuestionResult(
            question_id=question.id,
            is_correct=correct,
            score=score,
            user_answer=raw_answer,
            answered_at=self.clock(),
        )
        try:
            attempt.results.append(result)
            attempt.score = (attempt.score or 0) + score
            self.tracker.record(attempt.user_id, question.word_id, correct, commit=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            monitoring.db_errors.labels(operation_type="evaluate").inc()
            logger.exception(f"Failed to record answer for question {question_id} in attempt {attempt_id}")
            raise
        except VocabCoreError:
            self.db.rollback()
            raise

        self.db.refresh(result)
        monitoring.answers_submitted.labels(
            question_type=question.question_type.value,
            outcome="correct" if correct else "wrong",
        ).inc()
        logger.info(
            f"Attempt {attempt.id} question {question.id} ({question.question_type.value}): "
            f"answer={raw_answer!r} correct={correct}"
        )
        return result

    def feedback(self, question: ReviewQuestion, result: QuestionResult) -> AnswerFeedback:
        """Feedback for an already recorded result."""
        word = question.word
        return build_feedback(
            question_from_row(question),
            result.user_answer,
            result.is_correct,
            word.text if word is not None else "Unknown",
            WordStore.primary_meaning(word) if word is not None else "Unknown",
        )
