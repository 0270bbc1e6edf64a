"""
GeoSearch session

Wires the collaborators for one search session: logging, the DuckDB
executor over the Parquet view, the HTTP client for the embedding model
and the orchestrator that drives them.

Usage:
    async with search_session() as orchestrator:
        state = await orchestrator.search(SearchQuery(free_text="roads"))
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import structlog

from geosearch.config import Settings, get_settings
from geosearch.embeddings.service import EmbeddingService
from geosearch.logging_config import configure_logging
from geosearch.query.executor import DuckDBExecutor
from geosearch.search.orchestrator import SearchOrchestrator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def search_session(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[SearchOrchestrator]:
    """
    Open a search session and close its resources on exit.

    A caller-supplied ``client`` is used as-is and left open.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger.info("search_session_starting", debug=settings.DEBUG, source=settings.PARQUET_URL)

    # Extension installs and the Parquet metadata read block, keep them off the loop
    executor = await asyncio.to_thread(DuckDBExecutor.connect, settings)
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    embeddings = EmbeddingService(
        client,
        tokenizer_url=settings.TOKENIZER_URL,
        embeddings_url=settings.EMBEDDINGS_URL,
        dimension=settings.EMBEDDING_DIMENSIONS,
        dtype=settings.EMBEDDING_DTYPE,
    )
    try:
        yield SearchOrchestrator(executor, embeddings, settings=settings)
    finally:
        if owns_client:
            await client.aclose()
        executor.close()
        logger.info("search_session_closed")
