"""
Shared pytest fixtures and helpers.

Provides:
- In-memory DuckDB database with a small ``parquet_data`` table
- FakeExecutor recording every SQL string it receives
- httpx.MockTransport serving a tokenizer.json and a range-readable
  embedding table
"""

import json
import re
from typing import Callable, Optional, Sequence, Union

import duckdb
import httpx
import numpy as np
import pytest

from geosearch.query.executor import ExecutionResult

TOKENIZER_URL = "https://models.test/tokenizer.json"
EMBEDDINGS_URL = "https://models.test/embeddings.bin"


# =============================================================================
# In-memory DuckDB metadata table
# =============================================================================
COLUMNS = {
    "id": "VARCHAR",
    "title": "VARCHAR",
    "description": "VARCHAR[]",
    "creator": "VARCHAR[]",
    "location": "VARCHAR[]",
    "publisher": "VARCHAR[]",
    "provider": "VARCHAR",
    "access_rights": "VARCHAR",
    "resource_class": "VARCHAR[]",
    "resource_type": "VARCHAR[]",
    "subject": "VARCHAR[]",
    "theme": "VARCHAR[]",
    "format": "VARCHAR",
    "temporal": "VARCHAR[]",
    "index_year": "INTEGER[]",
    "modified": "VARCHAR",
    "identifier": "VARCHAR[]",
    "thumbnail": "VARCHAR",
    "geojson": "VARCHAR",
    "geometry": "VARCHAR",
    "references": "VARCHAR",
    "wxs_identifier": "VARCHAR",
    "embeddings": "FLOAT[]",
    "suppressed": "BOOLEAN",
}

RECORDS = [
    {
        "id": "princeton-campus-1920",
        "title": "Princeton Campus Map",
        "location": ["New Jersey", "Princeton"],
        "provider": "Princeton",
        "access_rights": "Public",
        "resource_class": ["Maps"],
        "subject": ["Campuses"],
        "format": "GeoTIFF",
        "embeddings": [1.0, 0.0, 0.0],
        "suppressed": False,
    },
    {
        "id": "stanford-trenton-roads",
        "title": "Trenton Roads",
        "location": ["New Jersey"],
        "provider": "Stanford",
        "access_rights": "Restricted",
        "resource_class": ["Datasets"],
        "format": "Shapefile",
        "embeddings": [0.6, 0.8, 0.0],
        "suppressed": None,
    },
    {
        "id": "princeton-hidden-atlas",
        "title": "Hidden Princeton Atlas",
        "location": ["Princeton"],
        "provider": "Princeton",
        "access_rights": "Public",
        "format": "GeoTIFF",
        "embeddings": [1.0, 0.0, 0.0],
        "suppressed": True,
    },
    {
        "id": "princeton-obrien-survey",
        "title": "O'Brien Survey",
        "description": ["Field survey notes"],
        "location": ["Princeton"],
        "provider": "Princeton",
        "access_rights": "Public",
        "resource_class": ["Maps"],
        "format": "",
        "embeddings": None,
        "suppressed": False,
    },
]


def create_metadata_table(conn: duckdb.DuckDBPyConnection, records=RECORDS) -> None:
    columns = ", ".join(f'"{name}" {kind}' for name, kind in COLUMNS.items())
    conn.execute(f"CREATE TABLE parquet_data ({columns})")
    placeholders = ", ".join("?" for _ in COLUMNS)
    conn.executemany(
        f"INSERT INTO parquet_data VALUES ({placeholders})",
        [[record.get(name) for name in COLUMNS] for record in records],
    )


@pytest.fixture
def duckdb_conn():
    """Fresh in-memory database holding the sample records."""
    conn = duckdb.connect(database=":memory:")
    create_metadata_table(conn)
    yield conn
    conn.close()


# =============================================================================
# Fake query executor
# =============================================================================
Response = Union[ExecutionResult, Exception, Callable[[str], ExecutionResult]]


class FakeExecutor:
    """
    Query executor double.

    ``respond(sql)`` picks the first rule whose substring occurs in the
    (lower-cased) SQL; unmatched SQL returns an empty result.
    """

    def __init__(self, rules: Optional[Sequence[tuple[str, Response]]] = None):
        self.rules = list(rules or [])
        self.calls: list[str] = []

    def add(self, needle: str, response: Response) -> None:
        self.rules.append((needle, response))

    async def execute(self, sql: str) -> ExecutionResult:
        self.calls.append(sql)
        lowered = sql.lower()
        for needle, response in self.rules:
            if needle.lower() in lowered:
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(sql)
                return response
        return ExecutionResult()


def rows_result(rows: list[dict]) -> ExecutionResult:
    columns = list(rows[0]) if rows else []
    return ExecutionResult(columns=columns, rows=rows, row_count=len(rows))


def count_result(total: int) -> ExecutionResult:
    return rows_result([{"total": total}])


@pytest.fixture
def fake_executor():
    return FakeExecutor()


# =============================================================================
# Remote embedding model (tokenizer.json + flat embedding table)
# =============================================================================

def tokenizer_json(tokens: Sequence[str]) -> dict:
    return {"model": {"type": "Unigram", "vocab": [[t, -1.0] for t in tokens]}}


def embedding_table(vectors: Sequence[Sequence[float]], dtype: str = "<f4") -> bytes:
    return np.asarray(vectors, dtype=dtype).tobytes()


_RANGE = re.compile(r"bytes=(\d+)-(\d+)")


class ModelServer:
    """
    MockTransport handler for the tokenizer and embedding table.

    Records every Range header served.  ``fail_ranges`` makes range
    requests answer 500; ``ignore_range`` answers 200 with the whole file.
    """

    def __init__(self, tokenizer: Union[dict, str, None], table: bytes):
        self.tokenizer = tokenizer
        self.table = table
        self.ranges: list[str] = []
        self.tokenizer_requests = 0
        self.fail_ranges = False
        self.ignore_range = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == TOKENIZER_URL:
            self.tokenizer_requests += 1
            if self.tokenizer is None:
                return httpx.Response(404)
            if isinstance(self.tokenizer, str):
                return httpx.Response(200, text=self.tokenizer)
            return httpx.Response(200, json=self.tokenizer)

        if url == EMBEDDINGS_URL:
            header = request.headers.get("Range", "")
            self.ranges.append(header)
            if self.fail_ranges:
                return httpx.Response(500)
            if self.ignore_range:
                return httpx.Response(200, content=self.table)
            match = _RANGE.fullmatch(header)
            start, end = int(match.group(1)), int(match.group(2))
            return httpx.Response(206, content=self.table[start : end + 1])

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


# Three-dimensional toy model: "map" and "princeton" are orthogonal
VOCAB = ["<pad>", "▁map", "▁princeton", "campus", "▁roads"]
VECTORS = [
    [0.0, 0.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 2.0],
    [3.0, 4.0, 0.0],
]


@pytest.fixture
def model_server():
    return ModelServer(tokenizer_json(VOCAB), embedding_table(VECTORS))
