"""Errors raised by the review engine."""


class VocabCoreError(Exception):
    """Base class for review engine errors."""


class NotFoundError(VocabCoreError):
    """Unknown word, session, attempt or question id."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class EmptyInputError(VocabCoreError):
    """No words are available to build a session."""


class InvalidStateError(VocabCoreError):
    """Operation is not allowed in the current state of a session or attempt."""


class DegradedDistractorWarning(UserWarning):
    """Too few distractor candidates, generic placeholders were substituted."""
