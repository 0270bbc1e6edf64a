"""
GeoSearch Query Engine — Query compiler

Pure functions turning a SearchQuery (plus an optional query embedding)
into executable DuckDB SQL.  Nothing here performs I/O.

Shapes:
    build_search_query           — Text row fetch or count
    build_semantic_search_query  — Similarity-ranked row fetch or count
    build_facet_query            — Value counts for one facet field
    build_item_detail_query      — Single record by id

Rules:
    - Every shape excludes suppressed records
    - Facet aggregation for a field never applies that field's own clause
    - An invalid spatial box is treated as absent
    - The raw geometry and the embedding vector are never projected
"""

from typing import Iterable, Optional

from sqlglot import exp

from geosearch.config import settings
from geosearch.query import clauses
from geosearch.query.clauses import RATIO_ALIAS, SIMILARITY_ALIAS, column, render
from geosearch.query.fields import FIELD_REGISTRY, FieldDescriptor, FieldRegistry
from geosearch.query.models import CompiledQuery, QueryKind, SearchMode, SearchQuery
from geosearch.query.pagination import pagination_bounds
from geosearch.query.spatial import valid_or_none

SCORED_CTE = "scored"
FILTERED_CTE = "filtered_data"
VALUE_ALIAS = "value"
COUNT_ALIAS = "count"
TOTAL_ALIAS = "total"


def effective_threshold(override: Optional[float] = None) -> float:
    """The override when it lies within [0, 1], otherwise the configured default."""
    if override is not None and 0.0 <= override <= 1.0:
        return float(override)
    return settings.SEARCH_SIMILARITY_THRESHOLD


def _table() -> exp.Table:
    return exp.to_table(settings.TABLE_NAME)


def _count_star() -> exp.Expression:
    return exp.alias_(exp.Count(this=exp.Star()), TOTAL_ALIAS)


def _filters(
    query: SearchQuery,
    registry: FieldRegistry,
    *,
    include_text: bool,
    exclude_facet: Optional[str] = None,
) -> list[exp.Expression]:
    """WHERE conditions shared by every shape except the detail lookup."""
    conditions = [clauses.not_suppressed()]
    if include_text and query.free_text:
        conditions.append(clauses.text_match_clause(query.free_text))
    conditions.extend(clauses.facet_clauses(query, registry, exclude=exclude_facet))
    box = valid_or_none(query.spatial_box)
    if box is not None:
        conditions.append(clauses.spatial_clause(box))
    return conditions


def _compiled(expression: exp.Expression, kind: QueryKind, mode: SearchMode) -> CompiledQuery:
    return CompiledQuery(text=render(expression), kind=kind, mode=mode, expression=expression)


# ── Text search ─────────────────────────────────────────────────────────────

def build_search_query(
    query: SearchQuery,
    registry: FieldRegistry = FIELD_REGISTRY,
    *,
    count_only: bool = False,
    page_size: Optional[int] = None,
) -> CompiledQuery:
    """
    Keyword search over title and id.

    Rows are ordered by overlap ratio when a spatial box is active and
    are otherwise in table order.
    """
    conditions = _filters(query, registry, include_text=True)

    if count_only:
        select = exp.select(_count_star()).from_(_table()).where(*conditions)
        return _compiled(select, QueryKind.COUNT, SearchMode.TEXT)

    projection: list[exp.Expression] = [column(name) for name in registry.result_columns()]
    box = valid_or_none(query.spatial_box)
    if box is not None:
        projection.append(exp.alias_(clauses.overlap_ratio(box), RATIO_ALIAS))

    limit, offset = pagination_bounds(query.page, page_size)
    select = exp.select(*projection).from_(_table()).where(*conditions)
    if box is not None:
        select = select.order_by(clauses.ascending(RATIO_ALIAS))
    select = select.limit(limit).offset(offset)

    return _compiled(select, QueryKind.ROWS, SearchMode.TEXT)


# ── Semantic search ─────────────────────────────────────────────────────────

def build_semantic_search_query(
    query: SearchQuery,
    embedding: Iterable[float],
    registry: FieldRegistry = FIELD_REGISTRY,
    *,
    count_only: bool = False,
    page_size: Optional[int] = None,
) -> CompiledQuery:
    """
    Similarity search against the stored record embeddings.

    The free-text clause is not applied: the text is already expressed by
    ``embedding``.  Records score ``list_dot_product(embeddings, query)``
    and only those at or above the effective threshold are kept, best
    first, with the overlap ratio as tie-breaker when a box is active.
    """
    embedding = list(embedding)
    conditions = _filters(query, registry, include_text=False)
    conditions.append(clauses.embedding_present())
    similarity = exp.alias_(clauses.similarity_expression(embedding), SIMILARITY_ALIAS)
    threshold = clauses.similarity_at_least(effective_threshold(query.threshold))

    if count_only:
        scored = exp.select(similarity).from_(_table()).where(*conditions)
        select = (
            exp.select(_count_star())
            .with_(SCORED_CTE, as_=scored)
            .from_(SCORED_CTE)
            .where(threshold)
        )
        return _compiled(select, QueryKind.COUNT, SearchMode.SEMANTIC)

    projection: list[exp.Expression] = [column(name) for name in registry.result_columns()]
    projection.append(similarity)
    box = valid_or_none(query.spatial_box)
    if box is not None:
        projection.append(exp.alias_(clauses.overlap_ratio(box), RATIO_ALIAS))

    ordering = [clauses.descending(SIMILARITY_ALIAS)]
    if box is not None:
        ordering.append(clauses.ascending(RATIO_ALIAS))

    limit, offset = pagination_bounds(query.page, page_size)
    scored = exp.select(*projection).from_(_table()).where(*conditions)
    select = (
        exp.select(exp.Star())
        .with_(SCORED_CTE, as_=scored)
        .from_(SCORED_CTE)
        .where(threshold)
        .order_by(*ordering)
        .limit(limit)
        .offset(offset)
    )
    return _compiled(select, QueryKind.ROWS, SearchMode.SEMANTIC)


# ── Facets ──────────────────────────────────────────────────────────────────

def build_facet_query(
    descriptor: FieldDescriptor,
    query: SearchQuery,
    embedding: Optional[Iterable[float]] = None,
    registry: FieldRegistry = FIELD_REGISTRY,
    *,
    max_values: Optional[int] = None,
) -> CompiledQuery:
    """
    Top value counts for one facet field under every other active filter.

    Multi-valued fields are exploded with UNNEST so each list member is
    counted separately.  With an ``embedding`` the counts are restricted
    to records that would pass the semantic threshold, and the free-text
    clause is dropped as in the semantic row query.
    """
    semantic = embedding is not None
    conditions = _filters(
        query, registry, include_text=not semantic, exclude_facet=descriptor.name
    )

    field = column(descriptor.name)
    value = clauses.func("UNNEST", field) if descriptor.multi_valued else field
    projection: list[exp.Expression] = [exp.alias_(value, VALUE_ALIAS)]

    outer_conditions = [clauses.not_blank(exp.column(VALUE_ALIAS))]
    if semantic:
        conditions.append(clauses.embedding_present())
        projection.append(
            exp.alias_(clauses.similarity_expression(list(embedding)), SIMILARITY_ALIAS)
        )
        outer_conditions.append(clauses.similarity_at_least(effective_threshold(query.threshold)))

    filtered = exp.select(*projection).from_(_table()).where(*conditions)
    select = (
        exp.select(
            exp.column(VALUE_ALIAS),
            exp.alias_(exp.Count(this=exp.Star()), COUNT_ALIAS),
        )
        .with_(FILTERED_CTE, as_=filtered)
        .from_(FILTERED_CTE)
        .where(*outer_conditions)
        .group_by(exp.column(VALUE_ALIAS))
        .order_by(clauses.descending(COUNT_ALIAS), clauses.ascending(VALUE_ALIAS))
        .limit(max_values or settings.MAX_FACET_VALUES)
    )
    mode = SearchMode.SEMANTIC if semantic else SearchMode.TEXT
    return _compiled(select, QueryKind.ROWS, mode)


# ── Item detail ─────────────────────────────────────────────────────────────

def build_item_detail_query(
    item_id: str,
    registry: FieldRegistry = FIELD_REGISTRY,
) -> CompiledQuery:
    """All detail columns of the record whose id equals ``item_id``."""
    select = (
        exp.select(*(column(name) for name in registry.detail_columns()))
        .from_(_table())
        .where(exp.EQ(this=column("id"), expression=clauses.string(item_id)))
        .limit(1)
    )
    return _compiled(select, QueryKind.ROWS, SearchMode.TEXT)
