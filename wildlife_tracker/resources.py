"""Per-entity wiring: schemas, mappers, hooks, services and routers."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from sqlalchemy import select as sa_select
from sqlalchemy.orm import selectinload

from wildlife_tracker.auth import Caller
from wildlife_tracker.config import QueryConfig
from wildlife_tracker.controller import CrudRouter, SessionDep
from wildlife_tracker.entities import (
    Animal,
    CreateAnimalDto,
    CreateHabitatDto,
    CreateSightingDto,
    Habitat,
    ReadAnimalDto,
    ReadHabitatDto,
    ReadSightingDto,
    Sighting,
    UpdateAnimalDto,
    UpdateHabitatDto,
    UpdateSightingDto,
    User,
)
from wildlife_tracker.errors import Unauthenticated
from wildlife_tracker.images import AnimalImageService
from wildlife_tracker.presence import OnlineUsersTracker
from wildlife_tracker.schema import EntitySchema, SchemaRegistry
from wildlife_tracker.service import EntityService

# --- Derived fields reachable from SQL ---


def _habitat_name_expression():
    return (
        sa_select(Habitat.name)
        .where(Habitat.id == Animal.habitat_id)
        .correlate(Animal)
        .scalar_subquery()
    )


def _sighting_species_expression():
    return (
        sa_select(Animal.species)
        .where(Animal.id == Sighting.animal_id)
        .correlate(Sighting)
        .scalar_subquery()
    )


def _observer_name_expression():
    return (
        sa_select(User.username)
        .where(User.id == Sighting.observer_id)
        .correlate(Sighting)
        .scalar_subquery()
    )


def build_registry() -> SchemaRegistry:
    """Build the field tables of every exposed entity"""
    registry = SchemaRegistry()
    registry.register(EntitySchema.from_models("habitats", Habitat, ReadHabitatDto))
    registry.register(
        EntitySchema.from_models(
            "animals",
            Animal,
            ReadAnimalDto,
            computed={"habitat_name": _habitat_name_expression},
        )
    )
    registry.register(
        EntitySchema.from_models(
            "sightings",
            Sighting,
            ReadSightingDto,
            computed={
                "species": _sighting_species_expression,
                "observer_name": _observer_name_expression,
            },
            aliases={"sighted_at": ("sighted",)},
        )
    )
    return registry


# --- Entity -> Read DTO mappers ---


def animal_to_read(animal: Animal) -> ReadAnimalDto:
    return ReadAnimalDto(
        **animal.model_dump(exclude={"image_path"}),
        habitat_name=animal.habitat.name if animal.habitat else None,
        has_image=animal.image_path is not None,
    )


def sighting_to_read(sighting: Sighting) -> ReadSightingDto:
    return ReadSightingDto(
        **sighting.model_dump(),
        species=sighting.animal.species if sighting.animal else None,
        observer_name=sighting.observer.username if sighting.observer else None,
    )


# --- Hooks ---


def bind_observer(values: Dict[str, Any], caller: Optional[Caller]) -> Dict[str, Any]:
    """Set the sighting's observer to the authenticated caller"""
    if caller is None:
        raise Unauthenticated("A sighting needs an authenticated observer")
    return {**values, "observer_id": caller.user_id}


@dataclass
class Services:
    habitats: EntityService
    animals: EntityService
    sightings: EntityService


def build_services(
    registry: SchemaRegistry,
    query_config: Optional[QueryConfig] = None,
    images: Optional[AnimalImageService] = None,
) -> Services:
    habitats = EntityService(
        Habitat,
        CreateHabitatDto,
        ReadHabitatDto,
        UpdateHabitatDto,
        schema=registry.get("habitats"),
        query_config=query_config,
    )
    animals = EntityService(
        Animal,
        CreateAnimalDto,
        ReadAnimalDto,
        UpdateAnimalDto,
        schema=registry.get("animals"),
        to_read=animal_to_read,
        references={"habitat_id": Habitat},
        server_owned={"image_path"},
        delete_hooks=(images.discard,) if images is not None else (),
        load_options=(selectinload(Animal.habitat),),
        query_config=query_config,
    )
    sightings = EntityService(
        Sighting,
        CreateSightingDto,
        ReadSightingDto,
        UpdateSightingDto,
        schema=registry.get("sightings"),
        to_read=sighting_to_read,
        references={"animal_id": Animal, "observer_id": User},
        server_owned={"observer_id"},
        create_hooks=(bind_observer,),
        update_hooks=(bind_observer,),
        load_options=(selectinload(Sighting.animal), selectinload(Sighting.observer)),
        query_config=query_config,
    )
    return Services(habitats=habitats, animals=animals, sightings=sightings)


# --- Routers ---


def get_image_service(request: Request) -> AnimalImageService:
    return request.app.state.images


def add_image_routes(router: APIRouter) -> APIRouter:
    """Attach the ``/{id}/image`` sub-resource to the animals router"""

    @router.put(
        "/{id}/image",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        summary="Create or replace the image of an Animal",
        responses={status.HTTP_404_NOT_FOUND: {"description": "Animal not found"}},
    )
    def put_image(
        id: int,
        session: SessionDep,
        file: UploadFile = File(...),
        images: AnimalImageService = Depends(get_image_service),
    ) -> Response:
        data = file.file.read(images.max_bytes + 1)
        images.create_or_replace(session, id, data, file.content_type)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete(
        "/{id}/image",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        summary="Delete the image of an Animal",
        responses={status.HTTP_404_NOT_FOUND: {"description": "Animal or image not found"}},
    )
    def delete_image(
        id: int,
        session: SessionDep,
        images: AnimalImageService = Depends(get_image_service),
    ) -> Response:
        images.delete(session, id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


def get_presence(request: Request) -> OnlineUsersTracker:
    return request.app.state.presence


def build_users_router() -> APIRouter:
    """Anonymous user endpoints"""
    router = APIRouter(prefix="/users", tags=["users"])

    @router.get("/online", response_model=List[str], summary="List online users")
    def get_online_users(
        presence: OnlineUsersTracker = Depends(get_presence),
    ) -> List[str]:
        return sorted(presence.get_online_users())

    return router


def build_routers(services: Services) -> List[APIRouter]:
    return [
        build_users_router(),
        add_image_routes(CrudRouter(services.animals, "/animals").build()),
        CrudRouter(services.habitats, "/habitats").build(),
        CrudRouter(services.sightings, "/sightings").build(),
    ]
