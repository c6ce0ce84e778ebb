"""Test configuration."""
import itertools
import os
import random
from datetime import UTC, datetime, timedelta
from typing import Callable, Generator, List, Optional

import pytest
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"

# Import after environment setup
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vocabcore.models.base import Base
from vocabcore.models.models import ProgressStatus, Word, WordProgress
from vocabcore.services.word_store import WordStore

fake = Faker()

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory database shared by every connection of one test."""
    import vocabcore.models.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def word_store(db: Session, rng: random.Random) -> WordStore:
    return WordStore(db, rng=rng)


@pytest.fixture
def make_word(word_store: WordStore) -> Callable[..., Word]:
    """Factory for dictionary words with distinct texts and meanings."""
    counter = itertools.count(1)

    def _make_word(
        text: Optional[str] = None,
        meanings: Optional[List[str]] = None,
        transcription: Optional[str] = None,
    ) -> Word:
        n = next(counter)
        if text is None:
            text = f"{fake.word()}{n}"
        if meanings is None:
            meanings = [f"{fake.word()} {fake.word()} {n}"]
        return word_store.add_word(
            text,
            meanings,
            transcription=transcription if transcription is not None else f"/{text}/",
            part_of_speech="noun",
            level=fake.random_element(["A1", "A2", "B1", "B2"]),
        )

    return _make_word


@pytest.fixture
def make_words(make_word: Callable[..., Word]) -> Callable[[int], List[Word]]:
    def _make_words(count: int) -> List[Word]:
        return [make_word() for _ in range(count)]

    return _make_words


@pytest.fixture
def user_id() -> int:
    return fake.random_int(min=1, max=100000)


@pytest.fixture
def make_progress(db: Session, clock: FakeClock) -> Callable[..., WordProgress]:
    """Factory for progress records with explicit schedule."""

    def _make_progress(
        user_id: int,
        word: Word,
        box: int = 1,
        wrong_count: int = 0,
        streak: int = 0,
        status: ProgressStatus = ProgressStatus.LEARNING,
        next_review_at: Optional[datetime] = None,
        last_reviewed_at: Optional[datetime] = None,
    ) -> WordProgress:
        progress = WordProgress(
            user_id=user_id,
            word_id=word.id,
            box=box,
            streak=streak,
            wrong_count=wrong_count,
            status=status,
            first_learned_at=clock() - timedelta(days=30),
            last_reviewed_at=last_reviewed_at,
            next_review_at=next_review_at if next_review_at is not None else clock() + timedelta(days=1),
        )
        db.add(progress)
        db.commit()
        db.refresh(progress)
        return progress

    return _make_progress
