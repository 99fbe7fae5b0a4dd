"""Field projection for list and detail responses (``?fields=id,species``)."""

from typing import Any, Iterable, List, Mapping, Optional

from pydantic import BaseModel

from wildlife_tracker.models import ProjectionSet
from wildlife_tracker.schema import EntitySchema


class FieldProjector:
    """
    Parses field lists and reduces Read DTOs to the requested keys.

    Projection runs after entity to Read DTO mapping, so derived Read DTO
    fields can be projected even though they are not stored columns.
    """

    def __init__(self, schema: EntitySchema):
        self.schema = schema

    def parse(self, raw: Optional[str]) -> ProjectionSet:
        """
        Parse a comma-separated field list.

        Args:
            raw: Field list; empty or ``None`` means every Read DTO field

        Returns:
            ProjectionSet: Set of wire names to keep

        Raises:
            UnknownField: If a name is not a Read DTO field
        """
        if not raw or not raw.strip():
            return ProjectionSet()
        names = [name.strip() for name in raw.split(",") if name.strip()]
        if not names:
            return ProjectionSet()
        return ProjectionSet(
            fields=frozenset(self.schema.require(name, "projectable").name for name in names)
        )

    @staticmethod
    def dump(item: Any) -> dict[str, Any]:
        """Read DTO (or mapping) as a dict keyed by wire names"""
        if isinstance(item, BaseModel):
            return item.model_dump(by_alias=True)
        if isinstance(item, Mapping):
            return dict(item)
        raise TypeError(f"Cannot project {type(item).__name__}")

    def apply(self, projection: ProjectionSet, item: Any) -> dict[str, Any]:
        return projection.apply(self.dump(item))

    def apply_many(self, projection: ProjectionSet, items: Iterable[Any]) -> List[dict[str, Any]]:
        return [self.apply(projection, item) for item in items]
