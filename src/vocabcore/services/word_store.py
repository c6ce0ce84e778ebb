"""Read access to dictionary words and their glosses."""
import logging
import random
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from vocabcore.exceptions import NotFoundError
from vocabcore.models.models import Gloss, Word

logger = logging.getLogger(__name__)

MISSING_MEANING = "N/A"


class WordStore:
    """Lookup of words and sampling of glosses for distractors."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        """Initialize the store with a database session and a random source."""
        self.db = db
        self.rng = rng or random.Random()

    def get_word(self, word_id: int) -> Word:
        """Get a word by its ID."""
        word = self.db.get(Word, word_id)
        if word is None:
            raise NotFoundError("Word", word_id)
        return word

    def get_words(self, word_ids: Sequence[int]) -> List[Word]:
        """Get several words, keeping the order of the given ids."""
        if not word_ids:
            return []
        found = {
            word.id: word
            for word in self.db.query(Word).filter(Word.id.in_(set(word_ids))).all()
        }
        missing = [word_id for word_id in word_ids if word_id not in found]
        if missing:
            raise NotFoundError("Word", missing[0])
        return [found[word_id] for word_id in word_ids]

    def get_word_by_text(self, text: str) -> Optional[Word]:
        """Get a word by its text."""
        return self.db.query(Word).filter(func.lower(Word.text) == text.lower()).first()

    def add_word(
        self,
        text: str,
        meanings: Sequence[str],
        transcription: Optional[str] = None,
        part_of_speech: Optional[str] = None,
        level: Optional[str] = None,
        definitions: Optional[Sequence[Optional[str]]] = None,
    ) -> Word:
        """Create a word with its glosses in the given order."""
        definitions = list(definitions or [])
        word = Word(
            text=text,
            transcription=transcription,
            part_of_speech=part_of_speech,
            level=level,
        )
        for index, meaning in enumerate(meanings):
            definition = definitions[index] if index < len(definitions) else None
            word.glosses.append(Gloss(order_index=index, meaning=meaning, definition=definition))
        self.db.add(word)
        self.db.commit()
        self.db.refresh(word)
        logger.debug(f"Added word {word.text} with {len(word.glosses)} glosses")
        return word

    @staticmethod
    def primary_meaning(word: Word) -> str:
        """Meaning shown for a word in questions."""
        meaning = word.primary_meaning
        if not meaning:
            logger.warning(f"No glosses found for word: {word.text}")
            return MISSING_MEANING
        return meaning

    @staticmethod
    def combined_meaning(word: Word) -> str:
        """All glosses of a word joined for display."""
        parts = []
        for gloss in word.glosses:
            text = gloss.meaning or ""
            if gloss.definition:
                text += f" ({gloss.definition})"
            if text.strip():
                parts.append(text)
        return "; ".join(parts)

    def sample_glosses(self, excluding: str, count: int, word_id: Optional[int] = None) -> List[str]:
        """Sample up to `count` distinct meanings different from `excluding`.

        With `word_id`, no gloss of that word is returned either.

        May return fewer than requested when the dictionary is small.
        """
        if count <= 0:
            return []
        query = self.db.query(Gloss.meaning).filter(func.lower(Gloss.meaning) != excluding.lower())
        if word_id is not None:
            own_meanings = select(func.lower(Gloss.meaning)).where(Gloss.word_id == word_id)
            query = query.filter(func.lower(Gloss.meaning).notin_(own_meanings))
        candidates = [meaning for (meaning,) in query.distinct().order_by(Gloss.meaning).all()]
        if len(candidates) <= count:
            self.rng.shuffle(candidates)
            return candidates
        return self.rng.sample(candidates, count)
