"""
GeoSearch — client-side geospatial metadata search core.

Packages:
    query       — Field registry, search state, SQL compiler, executor
    embeddings  — On-demand query embeddings over a remote token table
    search      — Search orchestration, result parsing, query history
"""
