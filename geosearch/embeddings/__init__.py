"""
GeoSearch Embedding Engine

Free text → unit query vector, fetching only the token rows it needs.

Modules:
    vectors    — Pooling, normalisation, validity checks, buffer decoding
    tokenizer  — tokenizer.json vocabulary loading and word lookup
    store      — HTTP range-request reader for the embedding table
    service    — Session-scoped, lazily loaded EmbeddingService
    errors     — EmbeddingError hierarchy
"""
