"""Flashcard learning sessions and their lifecycle."""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocabcore import monitoring
from vocabcore.config import settings
from vocabcore.exceptions import EmptyInputError, InvalidStateError, NotFoundError, VocabCoreError
from vocabcore.models.base import utcnow
from vocabcore.models.models import (
    AnswerType,
    LearningMode,
    LearningSession,
    SessionStatus,
    SessionVocabulary,
    Word,
)
from vocabcore.models.review_models import FlashcardResult, VocabResult
from vocabcore.services.progress_tracker import ProgressTracker
from vocabcore.services.session_aggregator import achievements
from vocabcore.services.word_store import WordStore

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SessionStatus.ACTIVE, SessionStatus.PAUSED)


class FlashcardService:
    """Service for flashcard sessions.

    Expiry is checked lazily: nothing runs in the background, callers use
    expire_if_timed_out() or expire_timed_out_sessions() when they need it.
    """

    def __init__(
        self,
        db: Session,
        tracker: Optional[ProgressTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.clock = clock
        self.tracker = tracker or ProgressTracker(db, clock=clock)

    def _timeout(self) -> timedelta:
        return timedelta(minutes=settings.flashcard.timeout_minutes)

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            monitoring.db_errors.labels(operation_type=operation).inc()
            logger.exception(f"Database error during flashcard {operation}")
            raise

    # Lookup

    def get_session(self, session_id: int) -> LearningSession:
        """Get a session by its ID."""
        session = self.db.get(LearningSession, session_id)
        if session is None:
            raise NotFoundError("LearningSession", session_id)
        return session

    def get_session_by_uuid(self, session_uuid: str) -> LearningSession:
        """Get a session by its public UUID."""
        session = (
            self.db.query(LearningSession)
            .filter(LearningSession.session_uuid == session_uuid)
            .first()
        )
        if session is None:
            raise NotFoundError("LearningSession", session_uuid)
        return session

    def get_open_session(self, user_id: int) -> Optional[LearningSession]:
        """The user's active or paused session, after expiring a timed-out one."""
        sessions = (
            self.db.query(LearningSession)
            .filter(
                LearningSession.user_id == user_id,
                LearningSession.status.in_(OPEN_STATUSES),
            )
            .order_by(LearningSession.started_at.desc(), LearningSession.id.desc())
            .all()
        )
        for session in sessions:
            if not self.expire_if_timed_out(session):
                return session
        return None

    def has_active_session(self, user_id: int) -> bool:
        """Whether the user already has an open session."""
        return self.get_open_session(user_id) is not None

    # Lifecycle

    def start_session(
        self,
        user_id: int,
        words: Sequence[Word],
        learning_mode: LearningMode = LearningMode.REVIEW,
    ) -> LearningSession:
        """Create a session over the given words, in order."""
        if self.has_active_session(user_id):
            raise InvalidStateError(f"User {user_id} already has an active learning session")

        unique_words = list({word.id: word for word in words}.values())
        if not unique_words:
            raise EmptyInputError("No words available for a learning session")

        now = self.clock()
        session = LearningSession(
            user_id=user_id,
            learning_mode=learning_mode,
            status=SessionStatus.ACTIVE,
            target_words=len(unique_words),
            actual_words=0,
            correct_count=0,
            wrong_count=0,
            skip_count=0,
            time_spent_sec=0,
            started_at=now,
            last_activity_at=now,
            expires_at=now + self._timeout(),
        )
        for index, word in enumerate(unique_words):
            session.vocabularies.append(SessionVocabulary(word_id=word.id, order_index=index))

        self.db.add(session)
        self._commit("start")
        self.db.refresh(session)

        monitoring.flashcard_sessions.labels(event="started").inc()
        logger.info(
            f"Created session {session.session_uuid} for user {user_id} "
            f"with {len(unique_words)} words, expires at {session.expires_at}"
        )
        return session

    def pause(self, session_id: int) -> LearningSession:
        """ACTIVE -> PAUSED."""
        session = self.get_session(session_id)
        now = self.clock()
        if session.status != SessionStatus.ACTIVE:
            raise InvalidStateError(f"Cannot pause session {session_id} in status {session.status.value}")
        if session.is_expired(now):
            raise InvalidStateError(f"Session {session_id} has expired")

        session.status = SessionStatus.PAUSED
        session.last_activity_at = now
        self._commit("pause")
        monitoring.flashcard_sessions.labels(event="paused").inc()
        logger.info(f"Paused session {session.session_uuid}")
        return session

    def resume(self, session_id: int) -> LearningSession:
        """Back to ACTIVE with a fresh timeout."""
        session = self.get_session(session_id)
        now = self.clock()
        if not session.can_resume(now):
            raise InvalidStateError(
                f"Cannot resume session {session_id} in status {session.status.value}"
                + (" (expired)" if session.is_expired(now) else "")
            )

        session.status = SessionStatus.ACTIVE
        session.expires_at = now + self._timeout()
        session.last_activity_at = now
        self._commit("resume")
        monitoring.flashcard_sessions.labels(event="resumed").inc()
        logger.info(f"Resumed session {session.session_uuid}, expires at {session.expires_at}")
        return session

    def record_answer(
        self,
        session_id: int,
        word_id: int,
        answer: AnswerType,
        time_spent_sec: Optional[int] = None,
    ) -> LearningSession:
        """Store the answer for one word of an active session."""
        session = self.get_session(session_id)
        now = self.clock()
        if session.status != SessionStatus.ACTIVE:
            raise InvalidStateError(f"Session {session_id} is not active ({session.status.value})")
        if session.is_expired(now):
            raise InvalidStateError(f"Session {session_id} has expired")

        entry = next((sv for sv in session.vocabularies if sv.word_id == word_id), None)
        if entry is None:
            raise NotFoundError("SessionVocabulary", word_id)
        if entry.is_answered:
            raise InvalidStateError(f"Word {word_id} already answered in session {session_id}")

        answer = AnswerType(answer)
        entry.user_answer = answer
        entry.time_spent_sec = time_spent_sec
        entry.answered_at = now

        if answer == AnswerType.CORRECT:
            session.correct_count += 1
        elif answer == AnswerType.WRONG:
            session.wrong_count += 1
        else:
            session.skip_count += 1
        session.actual_words += 1
        if time_spent_sec:
            session.time_spent_sec += time_spent_sec
        session.last_activity_at = now

        self._commit("record_answer")
        logger.debug(f"Recorded answer {answer.value} for word {word_id} in session {session.session_uuid}")
        return session

    def complete(self, session_id: int, duration_sec: Optional[int] = None) -> FlashcardResult:
        """Close the session and apply its answers to word progress.

        Skipped and unanswered words keep their progress untouched.
        """
        session = self.get_session(session_id)
        if session.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Cannot complete session {session_id} in status {session.status.value}")

        now = self.clock()
        session.status = SessionStatus.COMPLETED
        session.completed_at = now
        session.last_activity_at = now
        if duration_sec is not None:
            session.time_spent_sec = duration_sec

        updated = 0
        try:
            for entry in session.vocabularies:
                if entry.user_answer in (None, AnswerType.SKIP):
                    continue
                self.tracker.record(
                    session.user_id,
                    entry.word_id,
                    entry.user_answer == AnswerType.CORRECT,
                    commit=False,
                )
                updated += 1
        except SQLAlchemyError:
            self.db.rollback()
            monitoring.db_errors.labels(operation_type="complete").inc()
            logger.exception(f"Failed to apply progress for session {session_id}")
            raise
        except VocabCoreError:
            self.db.rollback()
            raise
        self._commit("complete")
        self.db.refresh(session)

        monitoring.flashcard_sessions.labels(event="completed").inc()
        monitoring.session_duration.labels(kind="flashcard").observe(session.time_spent_sec)
        logger.info(
            f"Completed session {session.session_uuid} - {session.correct_count}/{session.target_words} "
            f"correct, progress updated for {updated} words"
        )
        return self.result(session)

    def cancel(self, session_id: int) -> LearningSession:
        """Abandon an open session."""
        session = self.get_session(session_id)
        if session.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Cannot cancel session {session_id} in status {session.status.value}")

        session.status = SessionStatus.CANCELLED
        session.last_activity_at = self.clock()
        self._commit("cancel")
        monitoring.flashcard_sessions.labels(event="cancelled").inc()
        logger.info(f"Cancelled session {session.session_uuid}")
        return session

    def expire(self, session_id: int) -> LearningSession:
        """Mark an open session as timed out."""
        session = self.get_session(session_id)
        if session.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Cannot expire session {session_id} in status {session.status.value}")
        self._mark_expired(session)
        self._commit("expire")
        return session

    def _mark_expired(self, session: LearningSession) -> None:
        session.status = SessionStatus.EXPIRED
        session.last_activity_at = self.clock()
        monitoring.flashcard_sessions.labels(event="expired").inc()
        logger.info(f"Expired session {session.session_uuid}")

    def expire_if_timed_out(self, session: LearningSession) -> bool:
        """Expire an open session past its deadline. Returns True if it was expired."""
        if session.status not in OPEN_STATUSES or not session.is_expired(self.clock()):
            return False
        self._mark_expired(session)
        self._commit("expire")
        return True

    def expire_timed_out_sessions(self, user_id: Optional[int] = None) -> int:
        """Expire every open session past its deadline, optionally for one user."""
        query = self.db.query(LearningSession).filter(
            LearningSession.status.in_(OPEN_STATUSES),
            LearningSession.expires_at < self.clock(),
        )
        if user_id is not None:
            query = query.filter(LearningSession.user_id == user_id)
        sessions = query.all()
        for session in sessions:
            self._mark_expired(session)
        if sessions:
            self._commit("expire")
            logger.info(f"Expired {len(sessions)} timed-out sessions")
        return len(sessions)

    # Queries

    def result(self, session: LearningSession) -> FlashcardResult:
        """Summary of a session with its badges."""
        vocab_results = [
            VocabResult(
                word_id=entry.word_id,
                word=entry.word.text,
                meaning=WordStore.combined_meaning(entry.word),
                ipa=entry.word.transcription,
                user_answer=entry.user_answer.value if entry.user_answer else None,
                time_spent=entry.time_spent_sec,
            )
            for entry in session.vocabularies
        ]
        seconds_per_word = None
        if session.time_spent_sec and session.actual_words:
            seconds_per_word = session.time_spent_sec / session.actual_words

        return FlashcardResult(
            session_uuid=session.session_uuid,
            learning_mode=session.learning_mode.value,
            total_words=session.actual_words,
            correct_count=session.correct_count,
            wrong_count=session.wrong_count,
            skip_count=session.skip_count,
            accuracy_percentage=session.accuracy_percentage,
            time_spent_sec=session.time_spent_sec,
            formatted_duration=session.formatted_duration,
            vocabularies=vocab_results,
            achievements=achievements(session.accuracy_percentage, seconds_per_word, session.skip_count),
        )

    def unanswered(self, session_id: int) -> List[SessionVocabulary]:
        """Words of the session still waiting for an answer."""
        return [sv for sv in self.get_session(session_id).vocabularies if not sv.is_answered]

    def wrong_answers(self, session_id: int) -> List[SessionVocabulary]:
        """Words answered wrongly in the session."""
        return [
            sv for sv in self.get_session(session_id).vocabularies
            if sv.user_answer == AnswerType.WRONG
        ]

    def statistics(self, session_id: int) -> Dict[str, Any]:
        """Live counters of one session."""
        session = self.get_session(session_id)
        answered = sum(1 for sv in session.vocabularies if sv.is_answered)
        return {
            "session_uuid": session.session_uuid,
            "status": session.status.value,
            "total": session.target_words,
            "answered": answered,
            "unanswered": session.target_words - answered,
            "correct": session.correct_count,
            "wrong": session.wrong_count,
            "skip": session.skip_count,
            "accuracy": session.correct_count * 100.0 / answered if answered else 0.0,
            "started_at": session.started_at,
            "expires_at": session.expires_at,
            "is_expired": session.is_expired(self.clock()),
        }

    def user_history(self, user_id: int, offset: int = 0, limit: int = 20) -> List[LearningSession]:
        """Sessions of a user, newest first."""
        return (
            self.db.query(LearningSession)
            .filter(LearningSession.user_id == user_id)
            .order_by(LearningSession.started_at.desc(), LearningSession.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def user_statistics(self, user_id: int) -> Dict[str, Any]:
        """Totals over every session of a user."""
        sessions = self.db.query(LearningSession).filter(LearningSession.user_id == user_id).all()
        total_correct = sum(s.correct_count for s in sessions)
        total_wrong = sum(s.wrong_count for s in sessions)
        answered = total_correct + total_wrong
        return {
            "total_sessions": len(sessions),
            "completed_sessions": sum(1 for s in sessions if s.status == SessionStatus.COMPLETED),
            "total_vocabularies": sum(s.target_words for s in sessions),
            "total_correct": total_correct,
            "total_wrong": total_wrong,
            "overall_accuracy": total_correct * 100.0 / answered if answered else 0.0,
        }

    def cleanup_old_sessions(self, days: Optional[int] = None) -> int:
        """Delete completed sessions older than `days`."""
        if days is None:
            days = settings.flashcard.cleanup_days
        cutoff = self.clock() - timedelta(days=days)
        old_sessions = (
            self.db.query(LearningSession)
            .filter(
                LearningSession.status == SessionStatus.COMPLETED,
                LearningSession.completed_at < cutoff,
            )
            .all()
        )
        for session in old_sessions:
            self.db.delete(session)
        self._commit("cleanup")
        logger.info(f"Cleaned up {len(old_sessions)} sessions older than {days} days")
        return len(old_sessions)
