"""
GeoSearch Query Engine — Search state models

SearchQuery is the single input to the compiler and orchestrator.  The UI
creates a new instance on every parameter change; instances are immutable
and every transition helper returns a fresh copy.

URL parameter format (``from_params`` / ``to_params``):
    q          free text
    bbox       west,south,east,north
    page       1-based page number
    mode       "text" | "semantic"
    threshold  similarity threshold override
    <field>    comma-joined selected values for any facetable field
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlglot import exp

from geosearch.query.fields import FIELD_REGISTRY, FieldRegistry
from geosearch.query.spatial import SpatialBox, parse_bbox


class SearchMode(str, Enum):
    TEXT = "text"
    SEMANTIC = "semantic"


class QueryKind(str, Enum):
    ROWS = "rows"
    COUNT = "count"


class SearchQuery(BaseModel):
    """Complete, immutable filter state for one search."""

    model_config = ConfigDict(frozen=True)

    free_text: Optional[str] = None
    spatial_box: Optional[SpatialBox] = None
    selections: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    page: int = Field(default=1, ge=1)
    mode: SearchMode = SearchMode.TEXT
    threshold: Optional[float] = None

    @field_validator("free_text")
    @classmethod
    def _blank_text_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("selections", mode="before")
    @classmethod
    def _normalise_selections(cls, value: Any) -> dict[str, tuple[str, ...]]:
        # Ordered set semantics: keep first occurrence, drop empties and empty fields
        if not value:
            return {}
        cleaned: dict[str, tuple[str, ...]] = {}
        for field_name, values in dict(value).items():
            if isinstance(values, str):
                values = [values]
            ordered = tuple(dict.fromkeys(v for v in values if v))
            if ordered:
                cleaned[field_name] = ordered
        return cleaned

    # ── Accessors ───────────────────────────────────────────────────────

    def selected(self, field_name: str) -> tuple[str, ...]:
        return self.selections.get(field_name, ())

    def has_selection(self, field_name: str) -> bool:
        return bool(self.selections.get(field_name))

    # ── Transitions ─────────────────────────────────────────────────────

    def with_changes(self, **changes: Any) -> "SearchQuery":
        """Copy with the given fields replaced (re-validated)."""
        data = self.model_dump()
        data.update(changes)
        return SearchQuery.model_validate(data)

    def with_page(self, page: int) -> "SearchQuery":
        return self.with_changes(page=max(1, page))

    def with_facet_toggled(self, field_name: str, value: str) -> "SearchQuery":
        """
        Add ``value`` to the field's selection, or remove it when already
        selected.  Always resets to page 1; other fields are untouched.
        """
        current = list(self.selected(field_name))
        if value in current:
            current.remove(value)
        else:
            current.append(value)

        selections = {k: v for k, v in self.selections.items() if k != field_name}
        if current:
            selections[field_name] = tuple(current)
        return self.with_changes(selections=selections, page=1)

    def cleared_filters(self) -> "SearchQuery":
        """Drop every facet selection but keep the free text and the box."""
        return SearchQuery(
            free_text=self.free_text,
            spatial_box=self.spatial_box,
            mode=self.mode,
            threshold=self.threshold,
        )

    # ── URL parameters ──────────────────────────────────────────────────

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        registry: FieldRegistry = FIELD_REGISTRY,
    ) -> "SearchQuery":
        """Build a query from URL-style string parameters; bad values fall back to defaults."""
        try:
            page = max(1, int(params.get("page") or 1))
        except ValueError:
            page = 1

        try:
            mode = SearchMode(params.get("mode") or SearchMode.TEXT.value)
        except ValueError:
            mode = SearchMode.TEXT

        threshold = None
        if params.get("threshold"):
            try:
                threshold = float(params["threshold"])
            except ValueError:
                threshold = None

        selections = {
            f.name: tuple(params[f.name].split(","))
            for f in registry.facetable_fields()
            if params.get(f.name)
        }

        return cls(
            free_text=params.get("q"),
            spatial_box=parse_bbox(params.get("bbox")),
            selections=selections,
            page=page,
            mode=mode,
            threshold=threshold,
        )

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.free_text:
            params["q"] = self.free_text
        if self.spatial_box is not None:
            params["bbox"] = self.spatial_box.to_param()
        for field_name, values in self.selections.items():
            params[field_name] = ",".join(values)
        if self.page > 1:
            params["page"] = str(self.page)
        if self.mode is not SearchMode.TEXT:
            params["mode"] = self.mode.value
        if self.threshold is not None:
            params["threshold"] = repr(self.threshold)
        return params


@dataclass(frozen=True)
class CompiledQuery:
    """Executable query text plus the expression tree it was rendered from."""
    text: str
    kind: QueryKind
    mode: SearchMode
    expression: exp.Expression

    def __str__(self) -> str:
        return self.text
