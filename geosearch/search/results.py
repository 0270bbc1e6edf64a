"""
GeoSearch result parsing.

Turns executor rows into the plain structures the UI consumes.
"""

from dataclasses import dataclass
from typing import Any, Optional

from geosearch.config import settings


@dataclass(frozen=True)
class FacetValue:
    value: str
    count: int


def parse_result_rows(rows: list[dict]) -> list[dict[str, Any]]:
    """Copy rows, turning DuckDB list values into plain Python lists."""
    return [{k: _plain(v) for k, v in row.items()} for row in rows]


def parse_count(rows: list[dict]) -> int:
    """First column of the first row as an int; 0 when absent."""
    if not rows:
        return 0
    value = next(iter(rows[0].values()), None)
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def parse_facet_values(rows: list[dict], limit: Optional[int] = None) -> list[FacetValue]:
    """
    ``(value, count)`` rows → FacetValue list, count descending then value
    ascending, capped at ``limit`` (MAX_FACET_VALUES by default).  Null and
    blank values are dropped.
    """
    values = []
    for row in rows:
        value = row.get("value")
        if value is None or str(value).strip() == "":
            continue
        values.append(FacetValue(value=str(value), count=int(row.get("count") or 0)))

    values.sort(key=lambda f: (-f.count, f.value))
    return values[: limit or settings.MAX_FACET_VALUES]


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value
