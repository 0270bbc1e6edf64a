"""
GeoSearch Query Engine — Spatial Bounding Boxes

Parsing, validation and WKT rendering for the map's search rectangle.

A malformed or degenerate box is never an error: callers check
``is_valid`` (or use ``valid_or_none``) and treat an invalid box as if no
spatial filter had been requested.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SpatialBox(BaseModel):
    """Search rectangle in degrees (WGS84)."""

    model_config = ConfigDict(frozen=True)

    north: float
    south: float
    east: float
    west: float

    @property
    def is_valid(self) -> bool:
        values = (self.north, self.south, self.east, self.west)
        if not all(math.isfinite(v) for v in values):
            return False
        return (
            self.north > self.south
            and self.east > self.west
            and -90 <= self.south
            and self.north <= 90
            and -180 <= self.west
            and self.east <= 180
        )

    def to_wkt(self) -> str:
        """Closed 5-point ring, starting and ending at the north-west corner."""
        n, s, e, w = (_coord(v) for v in (self.north, self.south, self.east, self.west))
        return f"POLYGON(({w} {n}, {w} {s}, {e} {s}, {e} {n}, {w} {n}))"

    def to_param(self) -> str:
        """URL parameter form: ``west,south,east,north``."""
        return ",".join(_coord(v) for v in (self.west, self.south, self.east, self.north))


def parse_bbox(value: Optional[str]) -> Optional[SpatialBox]:
    """
    Parse a ``west,south,east,north`` string.

    Returns None for empty input or anything that is not exactly four
    numbers.  The returned box may still be invalid (e.g. north < south).
    """
    if not value:
        return None

    parts = value.split(",")
    if len(parts) != 4:
        return None
    try:
        west, south, east, north = (float(p) for p in parts)
    except ValueError:
        return None
    if any(math.isnan(v) for v in (west, south, east, north)):
        return None

    return SpatialBox(north=north, south=south, east=east, west=west)


def valid_or_none(box: Optional[SpatialBox]) -> Optional[SpatialBox]:
    """The box itself when it is usable as a filter, otherwise None."""
    if box is not None and box.is_valid:
        return box
    return None


def _coord(value: float) -> str:
    # Integers render without a trailing ".0" so WKT and URLs stay compact
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))
