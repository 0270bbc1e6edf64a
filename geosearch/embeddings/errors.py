"""Exceptions raised by the embedding engine."""

from typing import Optional


class EmbeddingError(Exception):
    """Base class: the query embedding could not be produced."""


class VocabularyError(EmbeddingError):
    """The tokenizer definition could not be loaded or holds no vocabulary."""


class EmbeddingFetchError(EmbeddingError):
    """A token vector could not be retrieved from the embedding store."""

    def __init__(self, message: str, token_id: Optional[int] = None):
        super().__init__(message)
        self.token_id = token_id
