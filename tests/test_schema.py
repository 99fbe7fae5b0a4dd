"""Tests for EntitySchema and SchemaRegistry."""

from datetime import date, datetime

import pytest

from wildlife_tracker.entities import Habitat, ReadHabitatDto
from wildlife_tracker.errors import UnknownField
from wildlife_tracker.schema import EntitySchema, SchemaRegistry


class TestEntitySchema:
    """Tests for schemas derived from table models and Read DTOs."""

    def test_registered_entities(self, registry):
        assert set(registry) == {"habitats", "animals", "sightings"}
        assert len(registry) == 3
        assert "animals" in registry

    def test_columns_take_their_sql_type(self, registry):
        schema = registry.get("sightings")
        assert schema.resolve("sightedAt").python_type is datetime
        assert schema.resolve("count").python_type is int
        assert registry.get("animals").resolve("birthDate").python_type is date
        assert registry.get("animals").resolve("weightKg").python_type is float

    def test_capabilities(self, registry):
        schema = registry.get("animals")
        assert "habitatName" in schema.filterable
        assert "habitatName" in schema.orderable
        assert "hasImage" not in schema.filterable
        assert "hasImage" not in schema.orderable
        assert "hasImage" in schema.projectable

    def test_only_read_fields_are_addressable(self, registry):
        schema = registry.get("animals")
        assert schema.resolve("imagePath") is None
        assert schema.resolve("image_path") is None

    def test_lookup_by_attribute_and_alias(self, registry):
        schema = registry.get("sightings")
        assert schema.resolve("sighted_at").name == "sightedAt"
        assert schema.resolve("sighted").name == "sightedAt"
        assert schema.resolve(" observerName ").attr == "observer_name"

    def test_require_reports_available_fields(self, registry):
        schema = registry.get("habitats")
        with pytest.raises(UnknownField) as exc_info:
            schema.require("size", "orderable")
        assert exc_info.value.available == sorted(schema.orderable)

    def test_identity(self, registry):
        assert registry.get("habitats").identity_field.name == "id"

    def test_missing_identity(self):
        with pytest.raises(ValueError, match="no identity field"):
            EntitySchema(name="broken", model=Habitat, fields={})

    def test_column_for_model_attribute(self, registry):
        schema = registry.get("habitats")
        assert str(schema.column(schema.resolve("areaKm2"))) == "habitats.area_km2"


class TestSchemaRegistry:
    def test_duplicate_registration(self):
        registry = SchemaRegistry()
        registry.register(EntitySchema.from_models("habitats", Habitat, ReadHabitatDto))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(EntitySchema.from_models("habitats", Habitat, ReadHabitatDto))

    def test_unknown_entity(self):
        with pytest.raises(KeyError):
            SchemaRegistry().get("unicorns")
