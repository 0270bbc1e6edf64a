"""
GeoSearch Embedding Service

Session-scoped owner of the embedding model.  Turns free text into a unit
query vector without downloading the full embedding table: the vocabulary
is loaded once, and only the rows for the query's tokens are fetched.

Functions:
    EmbeddingService.generate_query_embedding  — Text → pooled, normalised vector
    EmbeddingService.get_query_embedding       — Same, or None when unusable
    EmbeddingService.reset                     — Forget the cached model

Rules:
    - The vocabulary load is started at most once per session; concurrent
      callers share the same task
    - A failed load leaves semantic search unavailable until reset()
    - Never log embedding vectors — only metadata
"""

import asyncio
import time
from typing import Optional

import httpx
import numpy as np
import structlog

from geosearch.config import settings
from geosearch.embeddings.errors import VocabularyError
from geosearch.embeddings.store import EmbeddingStore
from geosearch.embeddings.tokenizer import TokenVocabulary, load_vocabulary, tokenize
from geosearch.embeddings.vectors import (
    ELEMENT_WIDTHS,
    is_valid_embedding,
    mean_pool,
    normalize_vector,
    zero_vector,
)

logger = structlog.get_logger(__name__)


class EmbeddingService:
    """Lazily initialised tokenizer + embedding table for one session."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        tokenizer_url: Optional[str] = None,
        embeddings_url: Optional[str] = None,
        dimension: Optional[int] = None,
        dtype: Optional[str] = None,
    ):
        dtype = dtype or settings.EMBEDDING_DTYPE
        if dtype not in ELEMENT_WIDTHS:
            raise ValueError(f"Unsupported embedding dtype: {dtype}")

        self.client = client
        self.tokenizer_url = tokenizer_url or settings.TOKENIZER_URL
        self.dimension = dimension or settings.EMBEDDING_DIMENSIONS
        self.element_width = ELEMENT_WIDTHS[dtype]
        self.store = EmbeddingStore(
            client,
            embeddings_url or settings.EMBEDDINGS_URL,
            self.dimension,
            self.element_width,
        )
        self._load_task: Optional[asyncio.Future] = None

    # ── Model lifecycle ─────────────────────────────────────────────────

    async def get_vocabulary(self) -> TokenVocabulary:
        """
        Return the session vocabulary, loading it on first use.

        Raises:
            VocabularyError: If the (single) load attempt failed.
        """
        if self._load_task is None:
            logger.info("vocabulary_load_started", source=self.tokenizer_url)
            self._load_task = asyncio.ensure_future(
                load_vocabulary(
                    self.client,
                    self.tokenizer_url,
                    self.dimension,
                    self.element_width,
                )
            )
        return await asyncio.shield(self._load_task)

    async def is_available(self) -> bool:
        """True once the vocabulary has loaded; False if loading failed."""
        try:
            await self.get_vocabulary()
        except VocabularyError as exc:
            logger.warning("semantic_search_unavailable", error=str(exc))
            return False
        return True

    @property
    def available(self) -> Optional[bool]:
        """Load state without triggering a load: None while unknown or pending."""
        if self._load_task is None or not self._load_task.done():
            return None
        return self._load_task.exception() is None

    def reset(self) -> None:
        """Drop the cached model so the next call re-initialises it."""
        if self._load_task is not None and self._load_task.done():
            # Consume the stored exception so asyncio does not warn about it
            self._load_task.exception()
        self._load_task = None

    # ── Query embeddings ────────────────────────────────────────────────

    async def generate_query_embedding(self, text: str) -> np.ndarray:
        """
        Embed ``text`` as the normalised mean of its token vectors.

        Repeated tokens are fetched once but weighted by how often they
        occur.  Text with no known tokens yields the zero vector.

        Raises:
            VocabularyError: If the model could not be loaded.
            EmbeddingFetchError: If any token vector could not be fetched.
        """
        start = time.perf_counter()
        vocabulary = await self.get_vocabulary()

        token_ids = tokenize(text, vocabulary)
        if not token_ids:
            logger.info("query_embedding_no_tokens", word_count=len(text.split()))
            return zero_vector(self.dimension)

        vectors = await self.store.fetch_vectors(token_ids)
        pooled = mean_pool([vectors[t] for t in token_ids], self.dimension)
        embedding = normalize_vector(pooled)

        logger.info(
            "query_embedding_generated",
            token_count=len(token_ids),
            distinct_tokens=len(vectors),
            dimension=self.dimension,
            elapsed_seconds=round(time.perf_counter() - start, 3),
        )
        return embedding

    async def get_query_embedding(self, text: Optional[str]) -> Optional[np.ndarray]:
        """
        Query vector for semantic search, or None when semantic search
        cannot be used (blank text, model unavailable, invalid vector).

        Raises:
            EmbeddingFetchError: Token retrieval failed for this query.
        """
        if not text or not text.strip():
            return None

        if not await self.is_available():
            return None

        embedding = await self.generate_query_embedding(text)
        if not is_valid_embedding(embedding):
            logger.info("query_embedding_invalid", dimension=self.dimension)
            return None
        return embedding
