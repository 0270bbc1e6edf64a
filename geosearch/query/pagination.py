"""
GeoSearch Query Engine — Pagination helpers.
"""

import math
from dataclasses import dataclass
from typing import Optional

from geosearch.config import settings


@dataclass(frozen=True)
class PaginationInfo:
    current_page: int
    total_pages: int
    total_results: int
    page_size: int
    start_result: int   # 1-based index of the first row on the page, 0 when empty
    end_result: int


def pagination_bounds(page: int, page_size: Optional[int] = None) -> tuple[int, int]:
    """Return ``(limit, offset)`` for a 1-based page number."""
    size = page_size or settings.PAGE_SIZE
    return size, (max(page, 1) - 1) * size


def calculate_pagination(
    current_page: int,
    total_results: int,
    page_size: Optional[int] = None,
) -> PaginationInfo:
    """Clamp the page into range and compute the visible result window."""
    size = page_size or settings.PAGE_SIZE
    total_pages = max(1, math.ceil(total_results / size))
    safe_page = max(1, min(current_page, total_pages))
    start = (safe_page - 1) * size + 1 if total_results > 0 else 0
    end = min(safe_page * size, total_results)

    return PaginationInfo(
        current_page=safe_page,
        total_pages=total_pages,
        total_results=total_results,
        page_size=size,
        start_result=start,
        end_result=end,
    )
