"""Construction of mixed-format review sessions."""
import logging
import random
import warnings
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from vocabcore import monitoring
from vocabcore.config import settings
from vocabcore.exceptions import DegradedDistractorWarning, EmptyInputError
from vocabcore.models.base import utcnow
from vocabcore.models.models import (
    Difficulty,
    QuestionType,
    ReviewQuestion,
    ReviewSession,
    Word,
)
from vocabcore.models.review_models import (
    FALSE_ANSWER,
    TRUE_ANSWER,
    BucketSplit,
    Question,
    encode_options,
    question_from_row,
)
from vocabcore.services.word_store import WordStore

logger = logging.getLogger(__name__)


def split_buckets(word_count: int, per_type: Optional[int] = None) -> BucketSplit:
    """Split a word list into consecutive multiple choice, true/false and fill-in-blank runs."""
    if per_type is None:
        per_type = settings.review.questions_per_type
    return BucketSplit(
        multiple_choice=min(per_type, word_count),
        true_false=min(per_type, max(0, word_count - per_type)),
        fill_in_blank=min(per_type, max(0, word_count - 2 * per_type)),
    )


class ReviewSessionBuilder:
    """Builds review sessions with generated distractors."""

    def __init__(
        self,
        db: Session,
        word_store: Optional[WordStore] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the builder.

        The random source drives distractor sampling, option shuffling and
        the true/false coin flip; pass a seeded one for reproducible sessions.
        """
        self.db = db
        self.rng = rng or random.Random()
        self.word_store = word_store or WordStore(db, rng=self.rng)
        self.clock = clock

    def build(self, user_id: int, words: Sequence[Word]) -> ReviewSession:
        """Create and store a review session for the given words."""
        if not words:
            raise EmptyInputError("No words available to build a review session")

        max_questions = settings.review.max_questions
        if len(words) > max_questions:
            logger.info(f"Truncating {len(words)} words to {max_questions} for review session")
            words = list(words)[:max_questions]

        now = self.clock()
        session = ReviewSession(
            user_id=user_id,
            title=f"Vocabulary review - {now:%d/%m/%Y %H:%M}",
            num_items=max_questions,
            time_limit_sec=settings.review.time_limit_sec,
            pass_score=settings.review.pass_score,
        )

        questions = self.create_questions(words)
        session.questions.extend(questions)
        # Declared size follows what was actually generated
        session.num_items = len(questions)

        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        monitoring.review_sessions_built.inc()
        logger.info(f"Created review session {session.id} for user {user_id} with {session.num_items} questions")
        return session

    def create_questions(self, words: Sequence[Word]) -> List[ReviewQuestion]:
        """Question rows for the words, in session order."""
        split = split_buckets(len(words))
        logger.info(
            f"Question distribution: MC={split.multiple_choice}, "
            f"TF={split.true_false}, FB={split.fill_in_blank}"
        )

        makers = (
            [self.make_multiple_choice] * split.multiple_choice
            + [self.make_true_false] * split.true_false
            + [self.make_fill_in_blank] * split.fill_in_blank
        )
        questions = []
        for order, (word, maker) in enumerate(zip(words, makers)):
            question = maker(word)
            question.session_order = order
            questions.append(question)
            monitoring.review_questions_built.labels(question_type=question.question_type.value).inc()
        return questions

    def make_multiple_choice(self, word: Word) -> ReviewQuestion:
        """Meaning of the word among three distractors, shuffled."""
        correct = self.word_store.primary_meaning(word)
        options = [correct] + self.distractors(correct, settings.review.distractor_count, word_id=word.id)
        self.rng.shuffle(options)
        correct_index = options.index(correct)

        logger.debug(f"MC question for {word.text}: {options} (correct at index {correct_index})")
        return ReviewQuestion(
            word_id=word.id,
            question_type=QuestionType.MULTIPLE_CHOICE,
            prompt=word.text,
            options=encode_options(options),
            answer=str(correct_index),
            difficulty=Difficulty.MEDIUM,
        )

    def make_true_false(self, word: Word) -> ReviewQuestion:
        """Word paired with either its own meaning or a wrong one."""
        correct = self.word_store.primary_meaning(word)
        if self.rng.random() < 0.5:
            prompt = f"{word.text} means {correct}"
            answer = TRUE_ANSWER
        else:
            wrong = self.distractors(correct, 1, word_id=word.id)[0]
            prompt = f"{word.text} means {wrong}"
            answer = FALSE_ANSWER

        return ReviewQuestion(
            word_id=word.id,
            question_type=QuestionType.TRUE_FALSE,
            prompt=prompt,
            answer=answer,
            difficulty=Difficulty.EASY,
        )

    def make_fill_in_blank(self, word: Word) -> ReviewQuestion:
        """Type the word from its transcription and meaning."""
        correct = self.word_store.primary_meaning(word)
        return ReviewQuestion(
            word_id=word.id,
            question_type=QuestionType.FILL_IN_BLANK,
            prompt=f"Listen: {word.transcription or '-'} - Meaning: {correct}",
            answer=word.text,
            difficulty=Difficulty.HARD,
        )

    def distractors(self, correct: str, count: int, word_id: Optional[int] = None) -> List[str]:
        """Wrong meanings from the dictionary, topped up with placeholders.

        Glosses of `word_id` itself are never used.
        """
        chosen = self.word_store.sample_glosses(correct, count, word_id=word_id)
        if len(chosen) >= count:
            return chosen[:count]

        found = len(chosen)
        taken = {meaning.lower() for meaning in chosen}
        taken.add(correct.lower())
        for fallback in settings.review.fallback_meanings:
            if len(chosen) >= count:
                break
            if fallback.lower() not in taken:
                chosen.append(fallback)
                taken.add(fallback.lower())

        message = f"Only {found} of {count} distractors found for '{correct}', placeholders substituted"
        logger.warning(message)
        monitoring.degraded_distractors.inc()
        warnings.warn(message, DegradedDistractorWarning, stacklevel=2)
        return chosen

    @staticmethod
    def questions_of(session: ReviewSession) -> List[Question]:
        """Typed questions of a stored session, in order."""
        return [question_from_row(row) for row in session.questions]
