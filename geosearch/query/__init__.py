"""
GeoSearch Query Engine

Modules:
    fields      — Field registry
    spatial     — Bounding box model and WKT conversion
    models      — SearchQuery / CompiledQuery
    pagination  — Page bounds and page summaries
    clauses     — sqlglot clause builders
    compiler    — Row, count, facet and detail query shapes
    executor    — DuckDB execution over the Parquet view
"""
