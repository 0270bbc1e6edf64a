"""
GeoSearch Search Layer

Modules:
    orchestrator  — Search sequencing, semantic fallback, facets, item lookup
    results       — Executor rows → rows / counts / facet values
    history       — Per-operation log of executed queries
"""
