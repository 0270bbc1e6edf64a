"""
GeoSearch Embeddings — Tokenizer

Loads a SentencePiece/Unigram ``tokenizer.json`` and maps query text to
token ids.  Only the vocabulary is downloaded; token vectors are fetched
on demand by the embedding store.

Tokenisation is deliberately simple: lowercase, split on whitespace, look
up each word with the ``▁`` word-boundary prefix and then without it.
Words found in neither form are dropped (there is no unknown-token vector).
"""

import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Union

import httpx
import structlog

from geosearch.embeddings.errors import VocabularyError

log = structlog.get_logger(__name__)

WORD_BOUNDARY = "\u2581"  # SentencePiece word-boundary marker "▁"


@dataclass(frozen=True)
class TokenVocabulary:
    """Token → id map plus the layout of the matching embedding table."""
    tokens: Mapping[str, int]
    dimension: int
    element_width: int
    source: str

    def __len__(self) -> int:
        return len(self.tokens)

    def get(self, token: str):
        return self.tokens.get(token)


def parse_vocabulary(data: Any) -> dict[str, int]:
    """
    Build the token → id map from a parsed tokenizer.json.

    The id of a token is its position in ``model.vocab`` (a list of
    ``[token, score]`` pairs).  Malformed entries are skipped but still
    consume their position.

    Raises:
        VocabularyError: If no usable entry is found.
    """
    entries = None
    if isinstance(data, dict) and isinstance(data.get("model"), dict):
        entries = data["model"].get("vocab")

    vocab: dict[str, int] = {}
    if isinstance(entries, list):
        for index, entry in enumerate(entries):
            if isinstance(entry, (list, tuple)) and entry and isinstance(entry[0], str):
                vocab[entry[0]] = index

    if not vocab:
        raise VocabularyError("No vocabulary found in tokenizer.json")
    return vocab


async def load_vocabulary(
    client: httpx.AsyncClient,
    url: str,
    dimension: int,
    element_width: int,
) -> TokenVocabulary:
    """
    Download and parse the tokenizer definition.

    Raises:
        VocabularyError: On HTTP failure, invalid JSON or an empty vocabulary.
    """
    start = time.perf_counter()
    try:
        response = await client.get(url)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        raise VocabularyError(f"Failed to load tokenizer: {exc}") from exc
    except ValueError as exc:
        raise VocabularyError(f"Tokenizer is not valid JSON: {exc}") from exc

    tokens = parse_vocabulary(data)

    log.info(
        "vocabulary_loaded",
        vocab_size=len(tokens),
        dimension=dimension,
        element_width=element_width,
        source=url,
        elapsed_seconds=round(time.perf_counter() - start, 3),
    )

    return TokenVocabulary(
        tokens=MappingProxyType(tokens),
        dimension=dimension,
        element_width=element_width,
        source=url,
    )


def tokenize(text: str, vocabulary: Union[TokenVocabulary, Mapping[str, int]]) -> list[int]:
    """Map text to token ids in order; unknown words are dropped."""
    token_ids: list[int] = []
    for word in text.lower().split():
        token_id = vocabulary.get(WORD_BOUNDARY + word)
        if token_id is None:
            token_id = vocabulary.get(word)
        if token_id is not None:
            token_ids.append(token_id)
    return token_ids
