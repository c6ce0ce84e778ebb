"""Tests for flashcard learning sessions."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocabcore.exceptions import EmptyInputError, InvalidStateError, NotFoundError
from vocabcore.models.models import AnswerType, LearningMode, SessionStatus
from vocabcore.services.flashcard_service import FlashcardService
from vocabcore.services.session_aggregator import NO_SKIP_CHALLENGE, PERFECT_SCORE, SPEED_LEARNER


@pytest.fixture
def flashcard_service(db: Session, clock) -> FlashcardService:
    """Create a flashcard service instance."""
    return FlashcardService(db, clock=clock)


@pytest.fixture
def words(make_words):
    return make_words(3)


@pytest.fixture
def session(flashcard_service: FlashcardService, words, user_id):
    """An active session over three words."""
    return flashcard_service.start_session(user_id, words)


def test_start_session(session, words, user_id, clock):
    """Test a new session starts active with a 30 minute timeout."""
    assert session.id is not None
    assert session.user_id == user_id
    assert session.status == SessionStatus.ACTIVE
    assert session.learning_mode == LearningMode.REVIEW
    assert session.target_words == 3
    assert session.actual_words == 0
    assert session.started_at == clock()
    assert session.expires_at == clock() + timedelta(minutes=30)
    assert [sv.word_id for sv in session.vocabularies] == [w.id for w in words]
    assert [sv.order_index for sv in session.vocabularies] == [0, 1, 2]


def test_start_session_deduplicates_words(flashcard_service: FlashcardService, words, user_id):
    session = flashcard_service.start_session(user_id, [words[0], words[1], words[0]], LearningMode.CUSTOM)

    assert session.target_words == 2
    assert session.learning_mode == LearningMode.CUSTOM


def test_start_session_without_words(flashcard_service: FlashcardService, user_id):
    with pytest.raises(EmptyInputError):
        flashcard_service.start_session(user_id, [])


def test_only_one_open_session_per_user(flashcard_service: FlashcardService, session, words, user_id):
    assert flashcard_service.has_active_session(user_id)
    with pytest.raises(InvalidStateError):
        flashcard_service.start_session(user_id, words)


def test_timed_out_session_does_not_block_a_new_one(flashcard_service, session, words, user_id, clock):
    clock.advance(minutes=31)

    new_session = flashcard_service.start_session(user_id, words)

    assert flashcard_service.get_session(session.id).status == SessionStatus.EXPIRED
    assert new_session.status == SessionStatus.ACTIVE


def test_lookup(flashcard_service: FlashcardService, session):
    assert flashcard_service.get_session_by_uuid(session.session_uuid).id == session.id
    with pytest.raises(NotFoundError):
        flashcard_service.get_session(999)
    with pytest.raises(NotFoundError):
        flashcard_service.get_session_by_uuid("missing")


def test_record_answers(flashcard_service: FlashcardService, session, words, clock):
    """Test that counters follow recorded answers."""
    clock.advance(minutes=1)
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT, 4)
    flashcard_service.record_answer(session.id, words[1].id, AnswerType.WRONG, 6)
    updated = flashcard_service.record_answer(session.id, words[2].id, AnswerType.SKIP)

    assert updated.correct_count == 1
    assert updated.wrong_count == 1
    assert updated.skip_count == 1
    assert updated.actual_words == 3
    assert updated.time_spent_sec == 10
    assert updated.last_activity_at == clock()
    assert flashcard_service.unanswered(session.id) == []
    assert [sv.word_id for sv in flashcard_service.wrong_answers(session.id)] == [words[1].id]


def test_record_answer_for_unknown_word(flashcard_service: FlashcardService, session, make_word):
    other = make_word()
    with pytest.raises(NotFoundError):
        flashcard_service.record_answer(session.id, other.id, AnswerType.CORRECT)


def test_record_answer_twice(flashcard_service: FlashcardService, session, words):
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT)

    with pytest.raises(InvalidStateError):
        flashcard_service.record_answer(session.id, words[0].id, AnswerType.WRONG)

    assert flashcard_service.get_session(session.id).correct_count == 1


def test_record_answer_needs_active_session(flashcard_service: FlashcardService, session, words, clock):
    flashcard_service.pause(session.id)
    with pytest.raises(InvalidStateError):
        flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT)

    flashcard_service.resume(session.id)
    clock.advance(minutes=45)
    with pytest.raises(InvalidStateError):
        flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT)


def test_pause_and_resume(flashcard_service: FlashcardService, session, clock):
    paused = flashcard_service.pause(session.id)
    assert paused.status == SessionStatus.PAUSED

    with pytest.raises(InvalidStateError):
        flashcard_service.pause(session.id)

    clock.advance(minutes=20)
    resumed = flashcard_service.resume(session.id)
    assert resumed.status == SessionStatus.ACTIVE
    assert resumed.expires_at == clock() + timedelta(minutes=30)


def test_resume_expired_session_is_rejected(flashcard_service: FlashcardService, session, clock):
    """Resuming past the timeout fails and leaves the status alone."""
    flashcard_service.pause(session.id)
    clock.advance(minutes=31)

    with pytest.raises(InvalidStateError):
        flashcard_service.resume(session.id)

    assert flashcard_service.get_session(session.id).status == SessionStatus.PAUSED


def test_complete_applies_progress(flashcard_service: FlashcardService, session, words, user_id):
    """Correct and wrong answers move progress, skipped and unanswered words do not."""
    tracker = flashcard_service.tracker
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT, 3)
    flashcard_service.record_answer(session.id, words[1].id, AnswerType.SKIP, 2)

    result = flashcard_service.complete(session.id)

    stored = flashcard_service.get_session(session.id)
    assert stored.status == SessionStatus.COMPLETED
    assert stored.completed_at is not None
    assert tracker.get_progress(user_id, words[0].id).box == 2
    assert tracker.get_progress(user_id, words[1].id) is None
    assert tracker.get_progress(user_id, words[2].id) is None

    assert result.session_uuid == session.session_uuid
    assert result.total_words == 2
    assert result.correct_count == 1
    assert result.skip_count == 1
    assert result.accuracy_percentage == 100.0
    assert result.time_spent_sec == 5
    assert result.achievements == [PERFECT_SCORE, SPEED_LEARNER]
    assert [v.user_answer for v in result.vocabularies] == ["CORRECT", "SKIP", None]


def test_complete_wrong_answer_demotes(flashcard_service, make_progress, words, user_id):
    make_progress(user_id, words[0], box=3, streak=2)
    session = flashcard_service.start_session(user_id, words[:1])
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.WRONG)

    result = flashcard_service.complete(session.id, duration_sec=200)

    progress = flashcard_service.tracker.get_progress(user_id, words[0].id)
    assert progress.box == 1
    assert progress.wrong_count == 1
    assert result.time_spent_sec == 200
    assert result.formatted_duration == "3:20"
    assert result.accuracy_percentage == 0.0
    assert result.achievements == [NO_SKIP_CHALLENGE]


def test_complete_paused_session(flashcard_service: FlashcardService, session):
    flashcard_service.pause(session.id)

    result = flashcard_service.complete(session.id)

    assert result.total_words == 0
    assert flashcard_service.get_session(session.id).status == SessionStatus.COMPLETED


def test_terminal_states_are_final(flashcard_service: FlashcardService, session):
    flashcard_service.complete(session.id)

    with pytest.raises(InvalidStateError):
        flashcard_service.complete(session.id)
    with pytest.raises(InvalidStateError):
        flashcard_service.cancel(session.id)
    with pytest.raises(InvalidStateError):
        flashcard_service.expire(session.id)
    with pytest.raises(InvalidStateError):
        flashcard_service.resume(session.id)


def test_cancel(flashcard_service: FlashcardService, session, user_id):
    cancelled = flashcard_service.cancel(session.id)

    assert cancelled.status == SessionStatus.CANCELLED
    assert not flashcard_service.has_active_session(user_id)


def test_expire(flashcard_service: FlashcardService, session):
    expired = flashcard_service.expire(session.id)

    assert expired.status == SessionStatus.EXPIRED
    with pytest.raises(InvalidStateError):
        flashcard_service.expire(session.id)


def test_expire_timed_out_sessions(flashcard_service: FlashcardService, make_words, clock):
    first = flashcard_service.start_session(1, make_words(2))
    clock.advance(minutes=20)
    second = flashcard_service.start_session(2, make_words(2))
    clock.advance(minutes=15)

    assert flashcard_service.expire_timed_out_sessions() == 1
    assert flashcard_service.get_session(first.id).status == SessionStatus.EXPIRED
    assert flashcard_service.get_session(second.id).status == SessionStatus.ACTIVE
    assert flashcard_service.expire_if_timed_out(flashcard_service.get_session(second.id)) is False


def test_statistics(flashcard_service: FlashcardService, session, words):
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT)

    stats = flashcard_service.statistics(session.id)

    assert stats["status"] == "ACTIVE"
    assert stats["total"] == 3
    assert stats["answered"] == 1
    assert stats["unanswered"] == 2
    assert stats["accuracy"] == 100.0
    assert stats["is_expired"] is False


def test_user_history_and_statistics(flashcard_service: FlashcardService, make_words, user_id, clock):
    """Test per-user history, newest first."""
    first_words = make_words(2)
    first = flashcard_service.start_session(user_id, first_words)
    flashcard_service.record_answer(first.id, first_words[0].id, AnswerType.CORRECT)
    flashcard_service.record_answer(first.id, first_words[1].id, AnswerType.WRONG)
    flashcard_service.complete(first.id)
    clock.advance(hours=1)
    second = flashcard_service.start_session(user_id, make_words(3))

    history = flashcard_service.user_history(user_id)
    stats = flashcard_service.user_statistics(user_id)

    assert [s.id for s in history] == [second.id, first.id]
    assert [s.id for s in flashcard_service.user_history(user_id, offset=1)] == [first.id]
    assert stats["total_sessions"] == 2
    assert stats["completed_sessions"] == 1
    assert stats["total_vocabularies"] == 5
    assert stats["overall_accuracy"] == 50.0


def test_cleanup_old_sessions(flashcard_service: FlashcardService, make_words, user_id, clock):
    old = flashcard_service.start_session(user_id, make_words(2))
    flashcard_service.complete(old.id)
    clock.advance(days=31)
    recent = flashcard_service.start_session(user_id, make_words(2))
    flashcard_service.complete(recent.id)

    assert flashcard_service.cleanup_old_sessions() == 1
    assert [s.id for s in flashcard_service.user_history(user_id)] == [recent.id]


def test_failed_complete_leaves_session_open(flashcard_service, make_progress, words, user_id, monkeypatch):
    """Progress updates and the status change are committed together."""
    make_progress(user_id, words[0], box=2, streak=1)
    session = flashcard_service.start_session(user_id, words)
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.CORRECT)
    record = flashcard_service.tracker.record

    def record_then_fail(*args, **kwargs):
        record(*args, **kwargs)
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(flashcard_service.tracker, "record", record_then_fail)
    with pytest.raises(SQLAlchemyError):
        flashcard_service.complete(session.id)

    assert flashcard_service.get_session(session.id).status == SessionStatus.ACTIVE
    assert flashcard_service.get_session(session.id).completed_at is None
    assert flashcard_service.tracker.get_progress(user_id, words[0].id).box == 2


def test_domain_error_during_complete_rolls_back(flashcard_service, session, words, monkeypatch):
    flashcard_service.record_answer(session.id, words[0].id, AnswerType.WRONG)

    def missing_word(user_id, word_id, correct, commit=True):
        raise NotFoundError("Word", word_id)

    monkeypatch.setattr(flashcard_service.tracker, "record", missing_word)
    with pytest.raises(NotFoundError):
        flashcard_service.complete(session.id)

    assert flashcard_service.get_session(session.id).status == SessionStatus.ACTIVE
