"""Tests for the review service."""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from vocabcore.exceptions import EmptyInputError, NotFoundError
from vocabcore.models.models import ProgressStatus
from vocabcore.services.review_service import ReviewService
from vocabcore.services.session_aggregator import GOOD_JOB


@pytest.fixture
def review_service(db: Session, rng, clock) -> ReviewService:
    """Create a review service instance."""
    return ReviewService(db, rng=rng, clock=clock)


def test_create_review_without_words(review_service: ReviewService, user_id):
    with pytest.raises(EmptyInputError):
        review_service.create_review_for_user(user_id)


def test_create_review_for_due_words(review_service: ReviewService, make_words, make_progress, user_id, clock):
    """Test the select then build flow."""
    words = make_words(6)
    for word in words[:4]:
        make_progress(user_id, word, box=2, next_review_at=clock() - timedelta(days=1))
    for word in words[4:]:
        make_progress(user_id, word, box=3, next_review_at=clock() + timedelta(days=5))

    session = review_service.create_review_for_user(user_id)

    assert session.user_id == user_id
    assert session.num_items == 4
    assert {q.word_id for q in review_service.get_review_questions(session.id)} == {w.id for w in words[:4]}


def test_select_review_words_default_limit(review_service: ReviewService, make_words, make_progress, user_id):
    for word in make_words(20):
        make_progress(user_id, word, box=1)

    assert len(review_service.select_review_words(user_id)) == 15
    assert len(review_service.select_review_words(user_id, limit=5)) == 5


def test_lookups_raise_for_unknown_ids(review_service: ReviewService):
    with pytest.raises(NotFoundError):
        review_service.get_review_session(404)
    with pytest.raises(NotFoundError):
        review_service.get_question(404)
    with pytest.raises(NotFoundError):
        review_service.get_attempt(404)
    with pytest.raises(NotFoundError):
        review_service.start_attempt(1, 404)


def test_start_attempt(review_service: ReviewService, make_words, user_id, clock):
    session = review_service.build_review_session(user_id, make_words(7))

    attempt = review_service.start_attempt(user_id, session.id)

    assert attempt.started_at == clock()
    assert attempt.score == 0
    assert attempt.max_score == 7
    assert attempt.submitted_at is None


def test_full_review_flow(review_service: ReviewService, make_words, make_progress, user_id, clock):
    """Test answering a whole session and reading the dashboard afterwards."""
    words = make_words(5)
    for word in words:
        make_progress(user_id, word, box=1, wrong_count=2)
    session = review_service.create_review_for_user(user_id)
    attempt = review_service.start_attempt(user_id, session.id)

    for index, question in enumerate(review_service.get_review_questions(session.id)):
        answer = question.answer if index < 4 else "wrong"
        review_service.submit_answer(attempt.id, question.id, answer)
    clock.advance(minutes=3)
    result = review_service.finalize_attempt(attempt.id)

    assert result.total_correct == 4
    assert result.accuracy == 80.0
    assert result.passed is True
    assert GOOD_JOB in result.achievements
    assert review_service.last_review_result(user_id) == result

    stats = review_service.review_stats(user_id)
    assert stats.difficult_count == 1
    difficult = review_service.tracker.difficult_words(user_id)
    assert [p.status for p in difficult] == [ProgressStatus.DIFFICULT]


def test_last_review_result_ignores_open_attempts(review_service: ReviewService, make_words, user_id):
    session = review_service.build_review_session(user_id, make_words(2))
    review_service.start_attempt(user_id, session.id)

    assert review_service.last_review_result(user_id) is None


def test_last_review_date(review_service: ReviewService, make_words, user_id, clock):
    assert review_service.last_review_date(user_id) is None

    session = review_service.build_review_session(user_id, make_words(2))
    review_service.start_attempt(user_id, session.id)
    assert review_service.last_review_date(user_id) == "Today"

    clock.advance(days=1)
    assert review_service.last_review_date(user_id) == "1 day ago"

    clock.advance(days=2)
    assert review_service.last_review_date(user_id) == "3 days ago"
