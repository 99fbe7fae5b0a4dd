"""Tests for EntityService against an in-memory SQLite database."""

from datetime import datetime, timedelta

import pytest

from tests.seed import BASE_TIME, seed_wolf_scenario
from wildlife_tracker.auth import Caller
from wildlife_tracker.entities import (
    CreateAnimalDto,
    CreateHabitatDto,
    CreateSightingDto,
    Sighting,
    UpdateAnimalDto,
    UpdateSightingDto,
)
from wildlife_tracker.errors import (
    ConflictingReference,
    InvalidLiteral,
    NotFound,
    Unauthenticated,
    UnknownField,
    ValidationError,
)
from wildlife_tracker.resources import bind_observer, build_services


@pytest.fixture(name="alice")
def alice_fixture(users):
    return Caller(user_id=users[0].id, username=users[0].username)


@pytest.fixture(name="bob")
def bob_fixture(users):
    return Caller(user_id=users[1].id, username=users[1].username)


@pytest.fixture(name="wolf_sightings")
def wolf_sightings_fixture(session, users, animals):
    return seed_wolf_scenario(session, users[0], animals)


class TestListScenario:
    """The filter -> order -> page -> project pipeline."""

    def test_recent_wolf_sightings(self, services, session, wolf_sightings):
        service = services.sightings
        query = service.build_query(
            page=1,
            size=10,
            filters="species:eq:Wolf,sighted:gte:2024-01-01",
            fields="id,species,location",
            order_by="sightedAt:desc",
        )
        result = service.list(session, query)

        assert result.total_count == 25
        assert len(result.items) == 10
        for item in result.items:
            assert set(item) == {"id", "species", "location"}
            assert item["species"] == "Wolf"
        assert [item["location"] for item in result.items] == [
            f"Ridge {i}" for i in range(24, 14, -1)
        ]

    def test_pages_partition_the_result(self, services, session, wolf_sightings):
        service = services.sightings
        seen = []
        totals = set()
        for page in (1, 2, 3):
            query = service.build_query(
                page=page, size=10, filters="species:eq:Wolf", order_by="sightedAt"
            )
            result = service.list(session, query)
            totals.add(result.total_count)
            seen.extend(item["id"] for item in result.items)

        assert totals == {30}
        assert len(seen) == 30
        assert len(set(seen)) == 30

    def test_page_past_the_end_is_empty(self, services, session, wolf_sightings):
        service = services.sightings
        result = service.list(session, service.build_query(page=50, size=10))
        assert result.items == []
        assert result.total_count == len(wolf_sightings)

    def test_default_order_is_identity(self, services, session, wolf_sightings):
        service = services.sightings
        result = service.list(session, service.build_query(size=100))
        ids = [item["id"] for item in result.items]
        assert ids == sorted(ids)

    def test_ties_are_broken_by_identity(self, services, session, wolf_sightings):
        service = services.sightings
        result = service.list(session, service.build_query(size=100, order_by="count:desc"))
        pairs = [(-item["count"], item["id"]) for item in result.items]
        assert pairs == sorted(pairs)

    def test_order_by_derived_field(self, services, session, animals):
        service = services.animals
        result = service.list(
            session, service.build_query(order_by="habitatName:desc,name", fields="name")
        )
        assert [item["name"] for item in result.items] == ["Shadow", "Bruno", "Grey One"]

    def test_filter_on_derived_field(self, services, session, wolf_sightings):
        service = services.sightings
        result = service.list(
            session, service.build_query(filters="observerName:eq:alice,species:eq:Bear")
        )
        assert result.total_count == 5

    def test_full_projection_uses_wire_names(self, services, session, animals):
        service = services.animals
        result = service.list(session, service.build_query(filters="species:eq:Lynx"))
        assert result.items == [
            {
                "id": animals["lynx"].id,
                "name": "Shadow",
                "species": "Lynx",
                "birthDate": animals["lynx"].birth_date,
                "endangered": True,
                "weightKg": 18.2,
                "habitatId": animals["lynx"].habitat_id,
                "habitatName": "Open Plains",
                "hasImage": False,
            }
        ]

    def test_search_across_fields(self, services, session, animals):
        service = services.animals
        result = service.list(
            session, service.build_query(search="BR", search_fields="name,species")
        )
        assert [item["name"] for item in result.items] == ["Bruno"]

    def test_ne_excludes_missing_values(self, services, session, animals):
        service = services.animals
        service.create(session, CreateAnimalDto(name="Nameless", species="Fox"))
        query = service.build_query(filters="weightKg:ne:41.5", fields="name,weightKg")
        result = service.list(session, query)
        assert [item["name"] for item in result.items] == ["Bruno", "Shadow"]
        assert all(query.filters.matches(item) for item in result.items)

    def test_size_is_clamped(self, services, session, wolf_sightings):
        service = services.sightings
        query = service.build_query(page=0, size=1000)
        assert query.window.page == 1
        assert query.window.size == 100

    def test_unknown_filter_field(self, services):
        with pytest.raises(UnknownField):
            services.sightings.build_query(filters="bogus:eq:1")

    def test_unknown_order_field(self, services):
        with pytest.raises(UnknownField):
            services.sightings.build_query(order_by="bogus:desc")

    def test_unknown_projection_field(self, services):
        with pytest.raises(UnknownField):
            services.sightings.build_query(fields="id,bogus")

    def test_bad_literal(self, services):
        with pytest.raises(InvalidLiteral):
            services.sightings.build_query(filters="count:gt:many")


class TestCrud:
    def test_create_then_get(self, services, session):
        service = services.habitats
        created = service.create(
            session, CreateHabitatDto(name="Wetland", climate="humid", area_km2=12.5)
        )
        assert created.id is not None

        fetched = service.get_by_id(session, created.id)
        assert fetched == created
        assert fetched.protected is False

    def test_create_fills_server_defaults(self, services, session, animals, alice):
        before = datetime.now()
        created = services.sightings.create(
            session,
            CreateSightingDto(animal_id=animals["wolf"].id, location="Pass"),
            alice,
        )
        assert created.count == 1
        assert created.sighted_at >= before - timedelta(seconds=1)
        assert created.species == "Wolf"
        assert created.observer_name == "alice"

    def test_get_missing(self, services, session):
        with pytest.raises(NotFound) as exc_info:
            services.habitats.get_by_id(session, 999)
        assert exc_info.value.status_code == 404

    def test_delete_twice(self, services, session):
        service = services.habitats
        created = service.create(session, CreateHabitatDto(name="Dunes"))
        service.delete(session, created.id)

        with pytest.raises(NotFound):
            service.get_by_id(session, created.id)
        with pytest.raises(NotFound):
            service.delete(session, created.id)

    def test_update_merges_set_fields(self, services, session, animals):
        service = services.animals
        wolf = animals["wolf"]
        service.update(session, wolf.id, UpdateAnimalDto(weight_kg=43.0))

        fetched = service.get_by_id(session, wolf.id)
        assert fetched.weight_kg == 43.0
        assert fetched.name == "Grey One"
        assert fetched.species == "Wolf"
        assert fetched.habitat_id == wolf.habitat_id

    def test_update_missing(self, services, session):
        with pytest.raises(NotFound):
            services.animals.update(session, 999, UpdateAnimalDto(name="Ghost"))

    def test_update_cannot_change_identity(self, services, session, animals):
        service = services.animals
        wolf_id = animals["wolf"].id
        service.update(session, wolf_id, UpdateAnimalDto.model_validate({"id": 77, "name": "X"}))
        assert service.get_by_id(session, wolf_id).name == "X"
        with pytest.raises(NotFound):
            service.get_by_id(session, 77)


    def test_identity_outside_store_range(self, services, session):
        huge = 10**20
        with pytest.raises(NotFound):
            services.habitats.get_by_id(session, huge)
        with pytest.raises(NotFound):
            services.habitats.delete(session, huge)
        with pytest.raises(NotFound):
            services.animals.update(session, huge, UpdateAnimalDto(name="Ghost"))

    def test_delete_hooks_run_after_commit(self, registry, session, animals):
        deleted = []
        services = build_services(registry)
        services.animals.delete_hooks = (deleted.append,)
        lynx_id = animals["lynx"].id
        services.animals.delete(session, lynx_id)

        assert [animal.id for animal in deleted] == [lynx_id]
        with pytest.raises(NotFound):
            services.animals.get_by_id(session, lynx_id)

    def test_failed_delete_skips_hooks(self, registry, session, animals, wolf_sightings):
        deleted = []
        services = build_services(registry)
        services.animals.delete_hooks = (deleted.append,)
        with pytest.raises(ConflictingReference):
            services.animals.delete(session, animals["wolf"].id)
        assert deleted == []


class TestReferences:
    def test_create_with_missing_reference(self, services, session):
        with pytest.raises(ValidationError) as exc_info:
            services.animals.create(
                session, CreateAnimalDto(name="Nemo", species="Fox", habitat_id=999)
            )
        assert exc_info.value.status_code == 400
        assert "habitatId" in exc_info.value.detail

    def test_update_with_missing_reference(self, services, session, animals):
        with pytest.raises(ValidationError):
            services.animals.update(session, animals["wolf"].id, UpdateAnimalDto(habitat_id=999))

    def test_reference_outside_store_range(self, services, session, animals):
        with pytest.raises(ValidationError):
            services.animals.update(session, animals["wolf"].id, UpdateAnimalDto(habitat_id=10**20))

    def test_delete_referenced_animal(self, services, session, animals, wolf_sightings):
        with pytest.raises(ConflictingReference) as exc_info:
            services.animals.delete(session, animals["wolf"].id)
        assert exc_info.value.status_code == 409

        # the failed delete was rolled back
        assert services.animals.get_by_id(session, animals["wolf"].id).species == "Wolf"

    def test_delete_referenced_habitat(self, services, session, animals):
        with pytest.raises(ConflictingReference):
            services.habitats.delete(session, animals["wolf"].habitat_id)


class TestObserverBinding:
    def test_hook_sets_observer(self, alice):
        assert bind_observer({"location": "Pass"}, alice) == {
            "location": "Pass",
            "observer_id": alice.user_id,
        }

    def test_hook_requires_caller(self):
        with pytest.raises(Unauthenticated):
            bind_observer({"location": "Pass"}, None)

    def test_create_binds_caller(self, services, session, animals, bob):
        created = services.sightings.create(
            session,
            CreateSightingDto.model_validate(
                {"animalId": animals["lynx"].id, "location": "Meadow", "observerId": 1}
            ),
            bob,
        )
        assert created.observer_id == bob.user_id

    def test_update_rebinds_caller(self, services, session, wolf_sightings, bob):
        sighting = wolf_sightings[0]
        services.sightings.update(session, sighting.id, UpdateSightingDto(count=4), bob)

        stored = session.get(Sighting, sighting.id)
        assert stored.count == 4
        assert stored.observer_id == bob.user_id
        assert stored.sighted_at == BASE_TIME
