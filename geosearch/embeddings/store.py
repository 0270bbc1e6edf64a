"""
GeoSearch Embeddings — Remote embedding table

The token embedding table is a flat binary file: row ``token_id`` holds
``dimension`` little-endian values of ``element_width`` bytes each.  Rows
are read with HTTP range requests so the table is never downloaded whole.

Rules:
    - One request per distinct token id, all issued concurrently
    - Any failed request fails the whole batch (no partial vectors)
    - Never log vector contents, only ids and sizes
"""

import asyncio
import time
from typing import Iterable

import httpx
import numpy as np
import structlog

from geosearch.embeddings.errors import EmbeddingFetchError
from geosearch.embeddings.vectors import decode_vector

log = structlog.get_logger(__name__)


class EmbeddingStore:
    """Range-request reader for one embedding table."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        dimension: int,
        element_width: int,
    ):
        self.client = client
        self.url = url
        self.dimension = dimension
        self.element_width = element_width

    @property
    def row_size(self) -> int:
        return self.dimension * self.element_width

    def byte_range(self, token_id: int) -> tuple[int, int]:
        """Inclusive ``(first, last)`` byte offsets of a token's row."""
        start = token_id * self.row_size
        return start, start + self.row_size - 1

    async def fetch_vector(self, token_id: int) -> np.ndarray:
        """
        Fetch and decode one token vector.

        Raises:
            EmbeddingFetchError: On HTTP failure or a short/oversized body.
        """
        start, end = self.byte_range(token_id)
        try:
            response = await self.client.get(
                self.url, headers={"Range": f"bytes={start}-{end}"}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmbeddingFetchError(
                f"Failed to fetch embedding for token {token_id}: {exc}",
                token_id=token_id,
            ) from exc

        content = response.content
        # A server that ignores Range answers 200 with the whole file
        if response.status_code == 200 and len(content) > self.row_size:
            content = content[start : end + 1]

        if len(content) != self.row_size:
            raise EmbeddingFetchError(
                f"Embedding for token {token_id} has {len(content)} bytes, "
                f"expected {self.row_size}",
                token_id=token_id,
            )

        return decode_vector(content, self.element_width)

    async def fetch_vectors(self, token_ids: Iterable[int]) -> dict[int, np.ndarray]:
        """
        Fetch every distinct token id concurrently.

        Fails fast: the first error is raised once it occurs.  Requests that
        are already in flight are not cancelled.
        """
        distinct = list(dict.fromkeys(token_ids))
        if not distinct:
            return {}

        start = time.perf_counter()
        vectors = await asyncio.gather(*(self.fetch_vector(t) for t in distinct))

        log.debug(
            "token_vectors_fetched",
            token_count=len(distinct),
            bytes_fetched=len(distinct) * self.row_size,
            elapsed_seconds=round(time.perf_counter() - start, 3),
        )
        return dict(zip(distinct, vectors))
