"""Domain tables and their Create / Read / Update DTOs"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field as DtoField
from pydantic.alias_generators import to_camel
from sqlmodel import Field, Relationship, SQLModel

from wildlife_tracker.db import SQL_INT_MAX


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str = Field(default="")
    created_at: datetime = Field(default_factory=datetime.now)


class Habitat(SQLModel, table=True):
    __tablename__ = "habitats"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    climate: str = Field(default="")
    description: Optional[str] = Field(default=None)
    area_km2: Optional[float] = Field(default=None)
    protected: bool = Field(default=False)


class Animal(SQLModel, table=True):
    __tablename__ = "animals"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    species: str = Field(index=True)
    birth_date: Optional[date] = Field(default=None)
    endangered: bool = Field(default=False)
    weight_kg: Optional[float] = Field(default=None)
    habitat_id: Optional[int] = Field(default=None, foreign_key="habitats.id", index=True)
    # Set by the image service only
    image_path: Optional[str] = Field(default=None)

    habitat: Optional[Habitat] = Relationship()


class Sighting(SQLModel, table=True):
    __tablename__ = "sightings"

    id: Optional[int] = Field(default=None, primary_key=True)
    animal_id: int = Field(foreign_key="animals.id", index=True)
    observer_id: int = Field(foreign_key="users.id", index=True)
    location: str = Field(default="")
    sighted_at: datetime = Field(default_factory=datetime.now, index=True)
    count: int = Field(default=1)
    notes: Optional[str] = Field(default=None)

    animal: Optional[Animal] = Relationship()
    observer: Optional[User] = Relationship()


class Dto(BaseModel):
    """Wire shape: camelCase keys, snake_case accepted on input"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Habitat ---


class CreateHabitatDto(Dto):
    name: str = DtoField(min_length=1, max_length=200)
    climate: str = DtoField(default="", max_length=100)
    description: Optional[str] = None
    area_km2: Optional[float] = DtoField(default=None, ge=0)
    protected: bool = False


class ReadHabitatDto(Dto):
    id: int
    name: str
    climate: str
    description: Optional[str] = None
    area_km2: Optional[float] = None
    protected: bool


class UpdateHabitatDto(Dto):
    name: Optional[str] = DtoField(default=None, min_length=1, max_length=200)
    climate: Optional[str] = DtoField(default=None, max_length=100)
    description: Optional[str] = None
    area_km2: Optional[float] = DtoField(default=None, ge=0)
    protected: Optional[bool] = None


# --- Animal ---


class CreateAnimalDto(Dto):
    name: str = DtoField(min_length=1, max_length=200)
    species: str = DtoField(min_length=1, max_length=200)
    birth_date: Optional[date] = None
    endangered: bool = False
    weight_kg: Optional[float] = DtoField(default=None, ge=0)
    habitat_id: Optional[int] = None


class ReadAnimalDto(Dto):
    id: int
    name: str
    species: str
    birth_date: Optional[date] = None
    endangered: bool
    weight_kg: Optional[float] = None
    habitat_id: Optional[int] = None
    habitat_name: Optional[str] = None
    has_image: bool = False


class UpdateAnimalDto(Dto):
    name: Optional[str] = DtoField(default=None, min_length=1, max_length=200)
    species: Optional[str] = DtoField(default=None, min_length=1, max_length=200)
    birth_date: Optional[date] = None
    endangered: Optional[bool] = None
    weight_kg: Optional[float] = DtoField(default=None, ge=0)
    habitat_id: Optional[int] = None


# --- Sighting ---
# observer_id is not part of the Create/Update shapes: it is bound from the
# authenticated caller.


class CreateSightingDto(Dto):
    animal_id: int
    location: str = DtoField(min_length=1, max_length=300)
    sighted_at: Optional[datetime] = None
    count: int = DtoField(default=1, ge=1, le=SQL_INT_MAX)
    notes: Optional[str] = None


class ReadSightingDto(Dto):
    id: int
    animal_id: int
    species: Optional[str] = None
    observer_id: int
    observer_name: Optional[str] = None
    location: str
    sighted_at: datetime
    count: int
    notes: Optional[str] = None


class UpdateSightingDto(Dto):
    animal_id: Optional[int] = None
    location: Optional[str] = DtoField(default=None, min_length=1, max_length=300)
    sighted_at: Optional[datetime] = None
    count: Optional[int] = DtoField(default=None, ge=1, le=SQL_INT_MAX)
    notes: Optional[str] = None
