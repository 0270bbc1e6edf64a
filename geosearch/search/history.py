"""
GeoSearch query history.

Append-only log of every query executed for the current top-level
operation (a search or an item lookup).  The orchestrator clears it when
such an operation starts; the UI reads it to show what ran and how long
each query took.
"""

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueryExecutionRecord:
    id: int
    label: str
    sql: str
    duration_ms: float
    timestamp: datetime


class QueryHistory:
    """Ordered list of QueryExecutionRecord for one operation."""

    def __init__(self):
        self._records: list[QueryExecutionRecord] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def add(self, label: str, sql: str, duration_ms: float) -> QueryExecutionRecord:
        record = QueryExecutionRecord(
            id=next(self._ids),
            label=label,
            sql=sql.strip(),
            duration_ms=round(duration_ms, 3),
            timestamp=datetime.now(timezone.utc),
        )
        self._records.append(record)
        logger.info("query_recorded", label=label, duration_ms=record.duration_ms)
        return record

    def clear(self) -> None:
        self._records.clear()

    def records(self) -> list[QueryExecutionRecord]:
        return list(self._records)

    def total_time_ms(self) -> float:
        return round(sum(r.duration_ms for r in self._records), 3)
