"""Plain data structures passed between the review services."""
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from vocabcore.models.models import QuestionType, ReviewQuestion

TRUE_ANSWER = "TRUE"
FALSE_ANSWER = "FALSE"


@dataclass(frozen=True)
class BucketSplit:
    """How many words go to each question type."""
    multiple_choice: int
    true_false: int
    fill_in_blank: int

    @property
    def total(self) -> int:
        return self.multiple_choice + self.true_false + self.fill_in_blank


@dataclass(frozen=True)
class MultipleChoice:
    """Pick the meaning of a word among four options."""
    question_id: Optional[int]
    word_id: int
    prompt: str
    options: tuple
    correct_index: int

    @property
    def correct_text(self) -> str:
        return self.options[self.correct_index]


@dataclass(frozen=True)
class TrueFalse:
    """Decide whether the shown meaning belongs to the word."""
    question_id: Optional[int]
    word_id: int
    prompt: str
    correct: bool

    @property
    def expected_answer(self) -> str:
        return TRUE_ANSWER if self.correct else FALSE_ANSWER


@dataclass(frozen=True)
class FillInBlank:
    """Type the word from its transcription and meaning."""
    question_id: Optional[int]
    word_id: int
    prompt: str
    correct_word: str


Question = Union[MultipleChoice, TrueFalse, FillInBlank]


def encode_options(options: Sequence[str]) -> str:
    """Serialize multiple choice options for storage."""
    return json.dumps(list(options), ensure_ascii=False)


def decode_options(raw: Optional[str]) -> List[str]:
    """Inverse of encode_options."""
    if not raw:
        return []
    return list(json.loads(raw))


def question_from_row(row: ReviewQuestion) -> Question:
    """Turn a stored question row into its typed variant."""
    if row.question_type == QuestionType.MULTIPLE_CHOICE:
        return MultipleChoice(
            question_id=row.id,
            word_id=row.word_id,
            prompt=row.prompt,
            options=tuple(decode_options(row.options)),
            correct_index=int(row.answer),
        )
    if row.question_type == QuestionType.TRUE_FALSE:
        return TrueFalse(
            question_id=row.id,
            word_id=row.word_id,
            prompt=row.prompt,
            correct=row.answer.upper() == TRUE_ANSWER,
        )
    if row.question_type == QuestionType.FILL_IN_BLANK:
        return FillInBlank(
            question_id=row.id,
            word_id=row.word_id,
            prompt=row.prompt,
            correct_word=row.answer,
        )
    raise ValueError(f"Unknown question type: {row.question_type}")


def question_type_of(question: Question) -> QuestionType:
    """Type tag of a question variant."""
    if isinstance(question, MultipleChoice):
        return QuestionType.MULTIPLE_CHOICE
    if isinstance(question, TrueFalse):
        return QuestionType.TRUE_FALSE
    if isinstance(question, FillInBlank):
        return QuestionType.FILL_IN_BLANK
    raise TypeError(f"Not a question: {question!r}")


@dataclass
class AnswerFeedback:
    """Detailed outcome of one submitted answer."""
    correct: bool
    user_answer: Optional[str]
    question_type: QuestionType
    word: str
    meaning: str
    explanation: str
    correct_option_index: Optional[int] = None
    correct_option_text: Optional[str] = None
    correct_true_false: Optional[str] = None
    correct_word_answer: Optional[str] = None


@dataclass
class ReviewResult:
    """Final result of a review attempt."""
    attempt_id: int
    total_correct: int
    total_questions: int
    mastered_words: List[str]
    need_review_words: List[str]
    duration_sec: int
    accuracy: float
    passed: bool
    achievements: List[str] = field(default_factory=list)


@dataclass
class ReviewStats:
    """Review counters for a dashboard."""
    overdue_count: int
    today_count: int
    difficult_count: int
    total_review_count: int


@dataclass
class LearningStatistics:
    """Aggregated progress of one user."""
    total_words: int
    words_to_review: int
    mastered_words: int
    learning_words: int
    accuracy: float
    box_statistics: Dict[int, int]


@dataclass
class VocabResult:
    """One word of a finished flashcard session."""
    word_id: int
    word: str
    meaning: str
    ipa: Optional[str]
    user_answer: Optional[str]
    time_spent: Optional[int]


@dataclass
class FlashcardResult:
    """Summary of a completed flashcard session."""
    session_uuid: str
    learning_mode: str
    total_words: int
    correct_count: int
    wrong_count: int
    skip_count: int
    accuracy_percentage: float
    time_spent_sec: int
    formatted_duration: str
    vocabularies: List[VocabResult] = field(default_factory=list)
    achievements: List[str] = field(default_factory=list)
