"""
GeoSearch Query Engine — Field Registry

Static description of every column in the metadata table and the role it
plays in search: whether it holds a list of values, whether it is offered as
a facet, and where it is displayed.  Built once at import time and never
mutated.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

# Column holding the raw WKB geometry; never projected, only filtered on.
GEOMETRY_FIELD = "geometry"
# Lightweight GeoJSON text projected instead of the raw geometry.
GEOMETRY_PROXY_FIELD = "geojson"
EMBEDDING_FIELD = "embeddings"
SUPPRESSED_FIELD = "suppressed"


@dataclass(frozen=True)
class FieldDescriptor:
    """How one metadata column behaves in search and display."""
    name: str
    label: str
    multi_valued: bool = False
    facetable: bool = False
    shown_in_summary: bool = False
    shown_in_detail: bool = False


FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("id", "ID"),
    FieldDescriptor("title", "Title", shown_in_summary=True),
    FieldDescriptor("description", "Description", multi_valued=True, shown_in_detail=True),
    FieldDescriptor("creator", "Creator", multi_valued=True, shown_in_detail=True),
    FieldDescriptor("location", "Place", multi_valued=True, facetable=True, shown_in_detail=True),
    FieldDescriptor("publisher", "Publisher", multi_valued=True, shown_in_detail=True),
    FieldDescriptor("provider", "Provider", facetable=True, shown_in_summary=True, shown_in_detail=True),
    FieldDescriptor("access_rights", "Access Rights", facetable=True, shown_in_summary=True, shown_in_detail=True),
    FieldDescriptor("resource_class", "Resource Class", multi_valued=True, facetable=True, shown_in_detail=True),
    FieldDescriptor("resource_type", "Resource Type", multi_valued=True, facetable=True, shown_in_detail=True),
    FieldDescriptor("subject", "Subject", multi_valued=True, facetable=True, shown_in_detail=True),
    FieldDescriptor("theme", "Theme", multi_valued=True, facetable=True, shown_in_detail=True),
    FieldDescriptor("format", "Format", facetable=True, shown_in_summary=True, shown_in_detail=True),
    FieldDescriptor("temporal", "Temporal", multi_valued=True, shown_in_detail=True),
    FieldDescriptor("index_year", "Index Year", multi_valued=True),
    FieldDescriptor("modified", "Modified"),
    FieldDescriptor("identifier", "Identifier", multi_valued=True),
    FieldDescriptor("thumbnail", "Thumbnail", shown_in_summary=True),
    FieldDescriptor(GEOMETRY_PROXY_FIELD, "GeoJSON"),
    FieldDescriptor(GEOMETRY_FIELD, "Geometry"),
    FieldDescriptor("references", "References"),
    FieldDescriptor("wxs_identifier", "WxS Identifier"),
)


class FieldRegistry:
    """Read-only lookup over a fixed set of field descriptors."""

    def __init__(self, fields: Iterable[FieldDescriptor]):
        self._fields = tuple(fields)
        self._by_name = {f.name: f for f in self._fields}

    def __iter__(self):
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def all_fields(self) -> tuple[FieldDescriptor, ...]:
        return self._fields

    def facetable_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self._fields if f.facetable)

    def summary_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self._fields if f.shown_in_summary)

    def detail_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self._fields if f.shown_in_detail)

    def get(self, name: str) -> Optional[FieldDescriptor]:
        """Descriptor for ``name``, or None for unknown fields."""
        return self._by_name.get(name)

    def result_columns(self) -> list[str]:
        """
        Columns projected by row-fetch queries.

        The record id, every summary field, the resource class (used for
        result placeholders) and the GeoJSON proxy.  The raw geometry is
        never projected.
        """
        names = ["id"]
        names.extend(f.name for f in self.summary_fields())
        names.extend(["resource_class", GEOMETRY_PROXY_FIELD])
        return _dedupe(n for n in names if n != GEOMETRY_FIELD)

    def detail_columns(self) -> list[str]:
        """Columns projected by the item detail lookup (everything but the raw geometry)."""
        return [f.name for f in self._fields if f.name != GEOMETRY_FIELD]


def _dedupe(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for name in names:
        if name not in seen:
            seen.add(name)
            out.append(name)
    return out


FIELD_REGISTRY = FieldRegistry(FIELDS)
