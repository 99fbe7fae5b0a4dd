"""Explicit per-entity field tables used to validate query strings.

An :class:`EntitySchema` lists which fields of an entity can be filtered,
ordered and projected, their declared Python type, and how to reach them
in SQL. Schemas are built once at startup and kept in a :class:`SchemaRegistry`.
"""

import types
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Type,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy import ColumnElement
from sqlmodel import SQLModel

from wildlife_tracker.errors import UnknownField

ExpressionFactory = Callable[[], ColumnElement[Any]]


def _annotation_type(annotation: Any) -> Optional[type]:
    """Unwrap ``Optional[X]`` / ``X | None`` down to ``X``"""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _annotation_type(args[0]) if len(args) == 1 else None
    if isinstance(annotation, type):
        return annotation
    return None


def _column_type(column: Any) -> Optional[type]:
    try:
        return getattr(column.type, "python_type", None)
    except (AttributeError, NotImplementedError):
        return None


@dataclass(frozen=True)
class FieldDescriptor:
    """
    One addressable field of an entity.

    Attributes:
        name: Wire (camelCase) name
        attr: Python attribute name on the table model and the Read DTO
        python_type: Declared type used to coerce filter literals
        filterable: Usable in filter strings
        orderable: Usable in order strings
        projectable: Usable in field lists
        expression: Factory for a SQL expression; ``None`` means the model column
        aliases: Extra names accepted for this field
    """

    name: str
    attr: str
    python_type: Optional[type]
    filterable: bool = True
    orderable: bool = True
    projectable: bool = True
    expression: Optional[ExpressionFactory] = None
    aliases: tuple[str, ...] = ()

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name, self.attr, *self.aliases)


@dataclass
class EntitySchema:
    """Field table for one entity type"""

    name: str
    model: Type[SQLModel]
    fields: Dict[str, FieldDescriptor]
    identity: str = "id"
    _lookup: Dict[str, FieldDescriptor] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for descriptor in self.fields.values():
            for name in descriptor.names:
                self._lookup.setdefault(name, descriptor)
        if self.identity not in self.fields:
            raise ValueError(f"Schema '{self.name}' has no identity field '{self.identity}'")

    @classmethod
    def from_models(
        cls,
        name: str,
        model: Type[SQLModel],
        read_model: Type[BaseModel],
        computed: Optional[Mapping[str, ExpressionFactory]] = None,
        aliases: Optional[Mapping[str, tuple[str, ...]]] = None,
    ) -> "EntitySchema":
        """
        Derive a schema from a table model and its Read DTO.

        Only fields of the Read DTO are addressable. Table columns are
        filterable and orderable; derived Read DTO fields are filterable and
        orderable only when ``computed`` provides a SQL expression for them,
        otherwise they are projectable only.

        Args:
            name: Entity tag used in the registry
            model: SQLModel table class
            read_model: Read DTO class
            computed: attribute name -> SQL expression factory for derived fields
            aliases: attribute name -> extra accepted names

        Returns:
            EntitySchema: The schema
        """
        computed = computed or {}
        aliases = aliases or {}
        columns = model.__table__.columns
        fields: Dict[str, FieldDescriptor] = {}

        for attr, info in read_model.model_fields.items():
            wire = to_camel(attr)
            if attr in columns:
                descriptor = FieldDescriptor(
                    name=wire,
                    attr=attr,
                    python_type=_column_type(columns[attr]),
                    aliases=aliases.get(attr, ()),
                )
            else:
                queryable = attr in computed
                descriptor = FieldDescriptor(
                    name=wire,
                    attr=attr,
                    python_type=_annotation_type(info.annotation),
                    filterable=queryable,
                    orderable=queryable,
                    expression=computed.get(attr),
                    aliases=aliases.get(attr, ()),
                )
            fields[wire] = descriptor

        return cls(name=name, model=model, fields=fields)

    @property
    def filterable(self) -> List[str]:
        return [d.name for d in self.fields.values() if d.filterable]

    @property
    def orderable(self) -> List[str]:
        return [d.name for d in self.fields.values() if d.orderable]

    @property
    def projectable(self) -> List[str]:
        return [d.name for d in self.fields.values() if d.projectable]

    @property
    def identity_field(self) -> FieldDescriptor:
        return self.fields[self.identity]

    def resolve(self, name: str) -> Optional[FieldDescriptor]:
        """Look a field up by wire name, attribute name or alias"""
        return self._lookup.get(name.strip())

    def require(self, name: str, capability: str) -> FieldDescriptor:
        """
        Resolve a field that must support ``capability``.

        Args:
            name: Requested field name
            capability: One of ``filterable``, ``orderable``, ``projectable``

        Returns:
            FieldDescriptor: The resolved field

        Raises:
            UnknownField: If the field does not exist or lacks the capability
        """
        descriptor = self.resolve(name)
        if descriptor is None or not getattr(descriptor, capability):
            kind = {"orderable": "sort field", "projectable": "projection field"}.get(
                capability, "field"
            )
            raise UnknownField(name.strip(), getattr(self, capability), kind=kind)
        return descriptor

    def column(self, descriptor: FieldDescriptor) -> ColumnElement[Any]:
        """SQL expression for a field"""
        if descriptor.expression is not None:
            return descriptor.expression()
        attr = getattr(self.model, descriptor.attr)
        if hasattr(attr, "__clause_element__"):
            return attr.__clause_element__()
        return attr


class SchemaRegistry:
    """Mapping from entity tag to its :class:`EntitySchema`"""

    def __init__(self):
        self._schemas: Dict[str, EntitySchema] = {}

    def register(self, schema: EntitySchema) -> EntitySchema:
        if schema.name in self._schemas:
            raise ValueError(f"Schema '{schema.name}' is already registered")
        self._schemas[schema.name] = schema
        return schema

    def get(self, name: str) -> EntitySchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise KeyError(f"No schema registered for '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)
