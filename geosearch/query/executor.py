"""
GeoSearch Query Engine — SQL Executor

Runs compiled SQL against an in-process DuckDB database in which the
metadata Parquet file is exposed as a view named ``TABLE_NAME``.

Every query runs on its own cursor in a worker thread so that concurrent
facet queries do not share DuckDB connection state and the event loop is
never blocked.  Failures are reported through ``ExecutionResult.error``,
never raised, so one broken query cannot take down a search.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import duckdb
import structlog
from sqlglot import exp

from geosearch.config import Settings, settings as default_settings

log = structlog.get_logger(__name__)


class QueryExecutionError(Exception):
    """A compiled query failed inside the query engine."""


@dataclass
class ExecutionResult:
    """Result of SQL execution."""
    columns: list[str] = field(default_factory=list)
    rows: list[dict] = field(default_factory=list)
    row_count: int = 0
    error: Optional[str] = None

    def raise_for_error(self) -> "ExecutionResult":
        if self.error is not None:
            raise QueryExecutionError(self.error)
        return self


def execute_sql(sql: str, conn: duckdb.DuckDBPyConnection) -> ExecutionResult:
    """
    Execute SQL on a fresh cursor of ``conn``.

    Parameters
    ----------
    sql : str
        SQL string rendered by the compiler.
    conn : duckdb.DuckDBPyConnection
        Connection whose database holds the metadata view.

    Returns
    -------
    ExecutionResult
    """
    cursor = conn.cursor()
    try:
        cursor.execute(sql)
        columns = [d[0] for d in cursor.description or ()]
        raw_rows = cursor.fetchall() if columns else []
        rows = [dict(zip(columns, row)) for row in raw_rows]

        log.debug("sql_executed", row_count=len(rows), column_count=len(columns))

        return ExecutionResult(columns=columns, rows=rows, row_count=len(rows))

    except duckdb.Error as exc:
        log.error("sql_execution_failed", error=str(exc))
        return ExecutionResult(error=f"Execution error: {exc}")
    finally:
        cursor.close()


def create_view_sql(view_name: str, parquet_url: str) -> str:
    """``CREATE OR REPLACE VIEW <view> AS SELECT * FROM read_parquet('<url>')``."""
    source = exp.Anonymous(this="read_parquet", expressions=[exp.Literal.string(parquet_url)])
    create = exp.Create(
        kind="VIEW",
        this=exp.to_table(view_name),
        expression=exp.select(exp.Star()).from_(source),
        replace=True,
    )
    return create.sql(dialect="duckdb")


class DuckDBExecutor:
    """Async query executor over a DuckDB connection."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    @classmethod
    def connect(
        cls,
        settings: Optional[Settings] = None,
        *,
        parquet_url: Optional[str] = None,
        extensions: Optional[Iterable[str]] = None,
    ) -> "DuckDBExecutor":
        """
        Open an in-memory database, load extensions and register the
        Parquet view.

        ``parquet_url`` and ``extensions`` override the settings values.
        """
        settings = settings or default_settings
        if extensions is None:
            extensions = [e.strip() for e in settings.DUCKDB_EXTENSIONS.split(",") if e.strip()]
        url = parquet_url or settings.PARQUET_URL

        start = time.perf_counter()
        conn = duckdb.connect(database=":memory:")
        for extension in extensions:
            conn.install_extension(extension)
            conn.load_extension(extension)

        if "httpfs" in extensions:
            conn.execute(f"SET GLOBAL http_retries = {int(settings.DUCKDB_HTTP_RETRIES)}")
        if settings.DUCKDB_THREADS:
            conn.execute(f"SET GLOBAL threads = {int(settings.DUCKDB_THREADS)}")

        conn.execute(create_view_sql(settings.TABLE_NAME, url))

        log.info(
            "duckdb_connected",
            extensions=list(extensions),
            view=settings.TABLE_NAME,
            source=url,
            elapsed_seconds=round(time.perf_counter() - start, 3),
        )
        return cls(conn)

    async def execute(self, sql: str) -> ExecutionResult:
        """Run ``sql`` off the event loop."""
        return await asyncio.to_thread(execute_sql, sql, self.conn)

    def close(self) -> None:
        self.conn.close()
