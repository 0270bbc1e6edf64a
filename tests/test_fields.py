"""
Tests for geosearch.query.fields — field registry lookups.
"""

from geosearch.query.fields import (
    FIELD_REGISTRY,
    GEOMETRY_FIELD,
    FieldDescriptor,
    FieldRegistry,
)


class TestFieldRegistry:

    def test_all_fields_in_schema_order(self):
        names = [f.name for f in FIELD_REGISTRY.all_fields()]
        assert names[:3] == ["id", "title", "description"]
        assert names[-1] == "wxs_identifier"
        assert len(names) == 22

    def test_facetable_fields(self):
        names = [f.name for f in FIELD_REGISTRY.facetable_fields()]
        assert names == [
            "location",
            "provider",
            "access_rights",
            "resource_class",
            "resource_type",
            "subject",
            "theme",
            "format",
        ]

    def test_scalar_facets(self):
        scalar = {f.name for f in FIELD_REGISTRY.facetable_fields() if not f.multi_valued}
        assert scalar == {"provider", "access_rights", "format"}

    def test_summary_fields(self):
        names = [f.name for f in FIELD_REGISTRY.summary_fields()]
        assert names == ["title", "provider", "access_rights", "format", "thumbnail"]

    def test_detail_fields(self):
        names = {f.name for f in FIELD_REGISTRY.detail_fields()}
        assert "description" in names
        assert "subject" in names
        assert "title" not in names
        assert GEOMETRY_FIELD not in names

    def test_get_known_field(self):
        descriptor = FIELD_REGISTRY.get("subject")
        assert descriptor.label == "Subject"
        assert descriptor.multi_valued is True

    def test_get_unknown_field_returns_none(self):
        assert FIELD_REGISTRY.get("not_a_field") is None


class TestProjections:

    def test_result_columns_use_geometry_proxy(self):
        columns = FIELD_REGISTRY.result_columns()
        assert columns[0] == "id"
        assert "geojson" in columns
        assert "resource_class" in columns
        assert GEOMETRY_FIELD not in columns
        assert len(columns) == len(set(columns))

    def test_detail_columns_never_include_raw_geometry_or_embeddings(self):
        columns = FIELD_REGISTRY.detail_columns()
        assert GEOMETRY_FIELD not in columns
        assert "embeddings" not in columns
        assert "references" in columns

    def test_custom_registry(self):
        registry = FieldRegistry([
            FieldDescriptor("id", "ID"),
            FieldDescriptor("kind", "Kind", facetable=True),
        ])
        assert len(registry) == 2
        assert [f.name for f in registry.facetable_fields()] == ["kind"]
        assert registry.result_columns() == ["id", "resource_class", "geojson"]
