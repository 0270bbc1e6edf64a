"""
GeoSearch Query Engine — Clause builders

Every filter is built as a sqlglot expression node.  User-supplied values
only ever enter the tree as ``exp.Literal`` nodes, and the tree is rendered
to DuckDB SQL in one place (``render``), which doubles embedded quotes.  No
caller concatenates user text into SQL.

DuckDB-specific functions (list_contains, list_dot_product, ST_*) are built
as ``exp.Anonymous`` so sqlglot renders them verbatim instead of
transpiling them to another dialect's equivalent.
"""

from typing import Iterable, Optional, Sequence

import numpy as np
from sqlglot import exp

from geosearch.embeddings.vectors import quantize_embedding
from geosearch.query.fields import (
    EMBEDDING_FIELD,
    GEOMETRY_FIELD,
    SUPPRESSED_FIELD,
    FieldDescriptor,
    FieldRegistry,
)
from geosearch.query.models import SearchQuery
from geosearch.query.spatial import SpatialBox

DIALECT = "duckdb"

SIMILARITY_ALIAS = "similarity"
RATIO_ALIAS = "ratio"


def render(expression: exp.Expression) -> str:
    """Serialise an expression tree to DuckDB SQL."""
    return expression.sql(dialect=DIALECT)


def column(name: str) -> exp.Column:
    # Always quoted: several metadata columns (e.g. "references") are SQL keywords
    return exp.column(name, quoted=True)


def func(name: str, *args: exp.Expression) -> exp.Anonymous:
    return exp.Anonymous(this=name, expressions=list(args))


def string(value: str) -> exp.Literal:
    return exp.Literal.string(value)


def not_suppressed() -> exp.Expression:
    """Records flagged as suppressed never appear in any result."""
    return exp.Not(this=exp.Is(this=column(SUPPRESSED_FIELD), expression=exp.true()))


def is_not_null(expression: exp.Expression) -> exp.Expression:
    return exp.Not(this=exp.Is(this=expression, expression=exp.Null()))


def not_blank(expression: exp.Expression) -> exp.Expression:
    return exp.and_(is_not_null(expression), exp.NEQ(this=expression, expression=string("")))


# ── Free text ───────────────────────────────────────────────────────────────

LIKE_ESCAPE = "\\"


def escape_like(text: str) -> str:
    """Make ``%``, ``_`` and the escape character match themselves."""
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return text


def _contains(name: str, pattern: str) -> exp.Expression:
    like = exp.ILike(this=column(name), expression=string(pattern))
    return exp.Escape(this=like, expression=string(LIKE_ESCAPE))


def text_match_clause(text: str) -> exp.Expression:
    """Case-insensitive substring match on the title or the record id."""
    pattern = f"%{escape_like(text)}%"
    return exp.paren(exp.or_(_contains("title", pattern), _contains("id", pattern)))


# ── Facets ──────────────────────────────────────────────────────────────────

def facet_clause(descriptor: FieldDescriptor, values: Sequence[str]) -> Optional[exp.Expression]:
    """
    Match any of ``values``.

    Multi-valued fields test list membership once per value, OR-ed together;
    scalar fields use a single IN list.
    """
    if not values:
        return None

    if descriptor.multi_valued:
        tests = [func("list_contains", column(descriptor.name), string(v)) for v in values]
        return exp.paren(exp.or_(*tests)) if len(tests) > 1 else tests[0]

    return exp.In(this=column(descriptor.name), expressions=[string(v) for v in values])


def facet_clauses(
    query: SearchQuery,
    registry: FieldRegistry,
    exclude: Optional[str] = None,
) -> list[exp.Expression]:
    """
    Clauses for every facetable field with selected values, in registry
    order.  ``exclude`` drops one field's own clause (facet aggregation).
    Selections for unknown or non-facetable fields are ignored.
    """
    clauses = []
    for descriptor in registry.facetable_fields():
        if descriptor.name == exclude:
            continue
        clause = facet_clause(descriptor, query.selected(descriptor.name))
        if clause is not None:
            clauses.append(clause)
    return clauses


# ── Spatial ─────────────────────────────────────────────────────────────────

def box_geometry(box: SpatialBox) -> exp.Expression:
    return func("ST_GeomFromText", string(box.to_wkt()))


def spatial_clause(box: SpatialBox) -> exp.Expression:
    return func("ST_Intersects", column(GEOMETRY_FIELD), box_geometry(box))


def overlap_ratio(box: SpatialBox) -> exp.Expression:
    """
    Record area divided by the area of its intersection with the box.

    1.0 means the record lies entirely inside the box; larger values mean
    more of the record falls outside it.
    """
    record_area = func("ST_Area", column(GEOMETRY_FIELD))
    intersection_area = func(
        "ST_Area",
        func("ST_Intersection", column(GEOMETRY_FIELD), box_geometry(box)),
    )
    return exp.Div(this=record_area, expression=intersection_area)


# ── Semantic ────────────────────────────────────────────────────────────────

def embedding_literal(embedding: Iterable[float]) -> exp.Expression:
    """
    Query vector as a DuckDB ``FLOAT[]`` list literal.

    Components are quantised to 6 decimal places with the same function
    used for client-side similarity recomputation.
    """
    values = quantize_embedding(np.asarray(list(embedding), dtype=np.float32))
    array = exp.Array(expressions=[exp.Literal.number(f"{v:.6f}") for v in values])
    return exp.Cast(this=array, to=exp.DataType.build("FLOAT[]", dialect=DIALECT))


def embedding_to_sql_array(embedding: Iterable[float]) -> str:
    return render(embedding_literal(embedding))


def embedding_present() -> exp.Expression:
    return is_not_null(column(EMBEDDING_FIELD))


def similarity_expression(embedding: Iterable[float]) -> exp.Expression:
    """Dot product of the stored (unit) embedding and the query vector."""
    return func("list_dot_product", column(EMBEDDING_FIELD), embedding_literal(embedding))


def similarity_at_least(threshold: float) -> exp.Expression:
    return exp.GTE(
        this=exp.column(SIMILARITY_ALIAS),
        expression=exp.Literal.number(repr(float(threshold))),
    )


def ascending(name: str) -> exp.Ordered:
    return exp.Ordered(this=exp.column(name), desc=False)


def descending(name: str) -> exp.Ordered:
    return exp.Ordered(this=exp.column(name), desc=True)
