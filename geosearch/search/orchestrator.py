"""
GeoSearch Search Orchestrator

Sequences embedding, query compilation and execution for every change of
the search state, with semantic → text fallback and staleness control.

Functions:
    SearchOrchestrator.search       — Rows, total count and expanded facets
    SearchOrchestrator.load_facets  — Aggregations for expanded, unloaded facets
    SearchOrchestrator.toggle_facet — Expand/collapse one facet panel
    SearchOrchestrator.fetch_item   — Detail lookup for a single record

Rules:
    - The query history is reset at the start of every search and lookup
    - A semantic search with zero rows falls back to text exactly once
    - The count always matches the mode that produced the displayed rows
    - Results of a superseded search are never committed (last started wins)
    - Query failures yield empty results and are logged, never raised
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

import numpy as np
import structlog

from geosearch.config import Settings, settings as default_settings
from geosearch.embeddings.errors import EmbeddingError
from geosearch.embeddings.service import EmbeddingService
from geosearch.query.compiler import (
    build_facet_query,
    build_item_detail_query,
    build_search_query,
    build_semantic_search_query,
)
from geosearch.query.executor import ExecutionResult, QueryExecutionError
from geosearch.query.fields import FIELD_REGISTRY, FieldDescriptor, FieldRegistry
from geosearch.query.models import CompiledQuery, SearchMode, SearchQuery
from geosearch.query.pagination import PaginationInfo, calculate_pagination
from geosearch.search.history import QueryHistory
from geosearch.search.results import (
    FacetValue,
    parse_count,
    parse_facet_values,
    parse_result_rows,
)

logger = structlog.get_logger(__name__)

SEARCH_LABEL = "Search Query"
SEMANTIC_LABEL = "Semantic Search Query"
FALLBACK_LABEL = "Text Search Query (fallback)"
COUNT_LABEL = "Count Query"
DETAIL_LABEL = "Item Detail Query"


class QueryExecutor(Protocol):
    async def execute(self, sql: str) -> ExecutionResult: ...


class ItemStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class ItemLookup:
    status: ItemStatus
    record: Optional[dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class SearchState:
    """Committed results of the most recent search."""
    query: SearchQuery = field(default_factory=SearchQuery)
    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    mode: SearchMode = SearchMode.TEXT  # mode that produced ``rows``
    embedding: Optional[np.ndarray] = None
    pagination: Optional[PaginationInfo] = None
    facets: dict[str, list[FacetValue]] = field(default_factory=dict)
    expanded: set[str] = field(default_factory=set)
    loading: bool = False
    facets_loading: set[str] = field(default_factory=set)

    def facet_loaded(self, field_name: str) -> bool:
        return field_name in self.facets


class SearchOrchestrator:
    """Runs searches against a query executor for one UI session."""

    def __init__(
        self,
        executor: QueryExecutor,
        embeddings: Optional[EmbeddingService] = None,
        registry: FieldRegistry = FIELD_REGISTRY,
        history: Optional[QueryHistory] = None,
        settings: Optional[Settings] = None,
    ):
        self.executor = executor
        self.embeddings = embeddings
        self.registry = registry
        self.history = history if history is not None else QueryHistory()
        self.settings = settings or default_settings
        self.state = SearchState()
        self._generation = 0

    # ── Staleness ───────────────────────────────────────────────────────

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: Optional[int]) -> bool:
        return generation is None or generation == self._generation

    # ── Search ──────────────────────────────────────────────────────────

    async def search(self, query: SearchQuery) -> Optional[SearchState]:
        """
        Run the row and count queries for ``query`` and load expanded facets.

        Returns the committed state, or None if a newer search started
        while this one was in flight.
        """
        generation = self._begin()
        self.history.clear()

        # Loaded facets belong to the previous query; only facets with a
        # selection start out expanded
        expanded = {f.name for f in self.registry.facetable_fields() if query.has_selection(f.name)}
        self.state = SearchState(query=query, expanded=expanded, loading=True)

        start = time.perf_counter()
        embedding = await self._query_embedding(query)
        if not self._is_current(generation):
            return None

        mode = SearchMode.TEXT
        if embedding is not None:
            compiled = build_semantic_search_query(
                query, embedding, self.registry, page_size=self.settings.PAGE_SIZE
            )
            result = await self._execute(SEMANTIC_LABEL, compiled, generation)
            if not self._is_current(generation):
                return None

            if result.rows:
                mode = SearchMode.SEMANTIC
            else:
                logger.info("semantic_search_fallback", page=query.page)
                embedding = None
                compiled = build_search_query(query, self.registry, page_size=self.settings.PAGE_SIZE)
                result = await self._execute(FALLBACK_LABEL, compiled, generation)
        else:
            compiled = build_search_query(query, self.registry, page_size=self.settings.PAGE_SIZE)
            result = await self._execute(SEARCH_LABEL, compiled, generation)

        if not self._is_current(generation):
            return None
        rows = parse_result_rows(result.rows)

        if mode is SearchMode.SEMANTIC:
            count_query = build_semantic_search_query(
                query, embedding, self.registry, count_only=True
            )
        else:
            count_query = build_search_query(query, self.registry, count_only=True)
        count_result = await self._execute(COUNT_LABEL, count_query, generation)
        if not self._is_current(generation):
            return None

        total = parse_count(count_result.rows)
        if result.error or count_result.error:
            rows, total = [], 0

        state = self.state
        state.rows = rows
        state.total = total
        state.mode = mode
        state.embedding = embedding
        state.pagination = calculate_pagination(query.page, total, self.settings.PAGE_SIZE)
        state.loading = False

        logger.info(
            "search_completed",
            mode=mode.value,
            requested_mode=query.mode.value,
            row_count=len(rows),
            total=total,
            query_count=len(self.history),
            elapsed_seconds=round(time.perf_counter() - start, 3),
        )

        await self._load_facets(generation)
        if not self._is_current(generation):
            return None
        return state

    async def _query_embedding(self, query: SearchQuery) -> Optional[np.ndarray]:
        """Semantic query vector, or None to search in text mode."""
        if query.mode is not SearchMode.SEMANTIC or not query.free_text:
            return None
        if self.embeddings is None:
            logger.info("semantic_search_unconfigured")
            return None
        try:
            return await self.embeddings.get_query_embedding(query.free_text)
        except EmbeddingError as exc:
            logger.warning("query_embedding_failed", error=str(exc))
            return None

    # ── Facets ──────────────────────────────────────────────────────────

    async def load_facets(self) -> dict[str, list[FacetValue]]:
        """Load every expanded facet that has no values yet."""
        await self._load_facets(self._generation)
        return self.state.facets

    async def toggle_facet(self, field_name: str) -> bool:
        """
        Collapse an expanded facet, or expand it and load its values.

        Returns True when the facet is expanded afterwards.  Unknown and
        non-facetable fields are ignored.
        """
        descriptor = self.registry.get(field_name)
        if descriptor is None or not descriptor.facetable:
            return False

        if field_name in self.state.expanded:
            self.state.expanded.discard(field_name)
            return False

        self.state.expanded.add(field_name)
        await self._load_facets(self._generation)
        return True

    async def _load_facets(self, generation: int) -> None:
        state = self.state
        if state.loading:
            # The running search loads expanded facets once its mode is known
            return

        pending = [
            f for f in self.registry.facetable_fields()
            if f.name in state.expanded
            and not state.facet_loaded(f.name)
            and f.name not in state.facets_loading
        ]
        if not pending:
            return

        embedding = state.embedding if state.mode is SearchMode.SEMANTIC else None
        state.facets_loading.update(f.name for f in pending)
        try:
            await asyncio.gather(
                *(self._load_facet(d, state, embedding, generation) for d in pending)
            )
        finally:
            state.facets_loading.difference_update(f.name for f in pending)

    async def _load_facet(
        self,
        descriptor: FieldDescriptor,
        state: SearchState,
        embedding: Optional[np.ndarray],
        generation: int,
    ) -> None:
        compiled = build_facet_query(descriptor, state.query, embedding, self.registry)
        result = await self._execute(f"Facet: {descriptor.label}", compiled, generation)
        if not self._is_current(generation) or result.error:
            # A failed aggregation stays unloaded so the next load retries it
            return
        state.facets[descriptor.name] = parse_facet_values(
            result.rows, self.settings.MAX_FACET_VALUES
        )

    # ── Item detail ─────────────────────────────────────────────────────

    async def fetch_item(self, item_id: str) -> ItemLookup:
        """Look up one record; "not found" is distinct from a failed query."""
        generation = self._begin()
        self.history.clear()
        compiled = build_item_detail_query(item_id, self.registry)
        result = await self._execute(DETAIL_LABEL, compiled, generation)
        try:
            result.raise_for_error()
        except QueryExecutionError as exc:
            return ItemLookup(status=ItemStatus.ERROR, error=str(exc))

        if not result.rows:
            logger.info("item_not_found", item_id=item_id)
            return ItemLookup(status=ItemStatus.NOT_FOUND)
        return ItemLookup(status=ItemStatus.FOUND, record=parse_result_rows(result.rows)[0])

    # ── Execution ───────────────────────────────────────────────────────

    async def _execute(
        self,
        label: str,
        compiled: CompiledQuery,
        generation: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Run one compiled query and record it in the history.

        Exceptions raised by the executor are folded into
        ``ExecutionResult.error``.  Queries from a superseded search are
        not recorded.
        """
        start = time.perf_counter()
        try:
            result = await self.executor.execute(compiled.text)
        except Exception as exc:
            result = ExecutionResult(error=f"Execution error: {exc}")
        duration_ms = (time.perf_counter() - start) * 1000

        if self._is_current(generation):
            self.history.add(label, compiled.text, duration_ms)
        if result.error is not None:
            logger.error("query_failed", label=label, error=result.error)
            result.rows = []
            result.row_count = 0
        return result
