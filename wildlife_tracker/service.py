"""Generic entity service.

One :class:`EntityService` instance serves one entity type. Everything that
differs between entities (DTO shapes, mapping, referenced tables, fields
bound from the caller) is passed in at construction time instead of being
overridden in subclasses:

    animals = EntityService(
        Animal, CreateAnimalDto, ReadAnimalDto, UpdateAnimalDto,
        schema=animal_schema,
        to_read=animal_to_read,
        references={"habitat_id": Habitat},
    )

The list pipeline runs filter, then order, then the page window, then
projection, so page boundaries and ``total_count`` are computed over the
whole filtered result.
"""

from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session, SQLModel, select

from wildlife_tracker.auth import Caller
from wildlife_tracker.config import QueryConfig
from wildlife_tracker.db import fits_sql_integer
from wildlife_tracker.errors import (
    ConflictingReference,
    ConflictingUpdate,
    NotFound,
    StoreError,
    ValidationError,
)
from wildlife_tracker.filters import FilterEngine, FilterParser
from wildlife_tracker.logging import get_logger
from wildlife_tracker.models import ListQuery, Page
from wildlife_tracker.pagination import PaginationEngine, PaginationPolicy
from wildlife_tracker.projection import FieldProjector
from wildlife_tracker.schema import EntitySchema
from wildlife_tracker.sorting import OrderParser, SortEngine

logger = get_logger(__name__)

EntityT = TypeVar("EntityT", bound=SQLModel)
CreateT = TypeVar("CreateT", bound=BaseModel)
ReadT = TypeVar("ReadT", bound=BaseModel)
UpdateT = TypeVar("UpdateT", bound=BaseModel)

# (values, caller) -> values; runs on create/update after server-owned fields are stripped
MutationHook = Callable[[Dict[str, Any], Optional[Caller]], Dict[str, Any]]
# entity -> None; runs once a delete has committed
DeleteHook = Callable[[Any], None]


class EntityService(Generic[EntityT, CreateT, ReadT, UpdateT]):
    """List / get / create / update / delete for one entity type"""

    def __init__(
        self,
        model: Type[EntityT],
        create_model: Type[CreateT],
        read_model: Type[ReadT],
        update_model: Type[UpdateT],
        schema: EntitySchema,
        *,
        to_read: Optional[Callable[[EntityT], ReadT]] = None,
        references: Optional[Mapping[str, Type[SQLModel]]] = None,
        server_owned: Iterable[str] = (),
        create_hooks: Sequence[MutationHook] = (),
        update_hooks: Sequence[MutationHook] = (),
        delete_hooks: Sequence[DeleteHook] = (),
        load_options: Sequence[Any] = (),
        query_config: Optional[QueryConfig] = None,
        label: Optional[str] = None,
    ):
        """
        Args:
            model: SQLModel table class
            create_model: Create DTO class
            read_model: Read DTO class
            update_model: Update DTO class
            schema: Field table of the entity
            to_read: Entity -> Read DTO mapper; defaults to attribute validation
            references: attribute -> referenced table, checked on create/update
            server_owned: attributes never taken from a request body
            create_hooks: value hooks run on create (e.g. binding the caller)
            update_hooks: value hooks run on update
            delete_hooks: callbacks run with the removed entity after commit
            load_options: loader options for list/get (e.g. ``selectinload``)
            query_config: pagination policy
            label: human readable entity name for messages
        """
        self.model = model
        self.create_model = create_model
        self.read_model = read_model
        self.update_model = update_model
        self.schema = schema
        self.references = dict(references or {})
        self.server_owned = frozenset({schema.identity_field.attr, *server_owned})
        self.create_hooks = tuple(create_hooks)
        self.update_hooks = tuple(update_hooks)
        self.delete_hooks = tuple(delete_hooks)
        self.load_options = tuple(load_options)
        self.label = label or model.__name__
        self._to_read = to_read

        self.filter_parser = FilterParser(schema)
        self.order_parser = OrderParser(schema)
        self.projector = FieldProjector(schema)
        self.pagination_policy = PaginationPolicy(query_config)

        self._filter_engine = FilterEngine(schema)
        self._sort_engine = SortEngine(schema)
        self._pagination_engine = PaginationEngine()

    # --- Mapping ---

    def to_read(self, entity: EntityT) -> ReadT:
        if self._to_read is not None:
            return self._to_read(entity)
        return self.read_model.model_validate(entity, from_attributes=True)

    # --- Query building ---

    def build_query(
        self,
        page: Optional[int] = None,
        size: Optional[int] = None,
        filters: Optional[str] = None,
        fields: Optional[str] = None,
        order_by: Optional[str] = None,
        search: Optional[str] = None,
        search_fields: Optional[str] = None,
    ) -> ListQuery:
        """
        Parse raw list parameters into a query descriptor.

        Raises:
            QueryParseError: If any of the strings is invalid for this entity
        """
        expression = self.filter_parser.parse(filters)
        search_group = self.filter_parser.parse_search(search, search_fields)
        if search_group is not None:
            expression = expression.and_(search_group)
        return ListQuery(
            filters=expression,
            order=self.order_parser.parse(order_by),
            window=self.pagination_policy.window(page, size),
            projection=self.projector.parse(fields),
        )

    # --- Operations ---

    def list(self, session: Session, query: ListQuery) -> Page[Dict[str, Any]]:
        """
        Return one page of projected Read DTOs and the filtered total.

        Args:
            session: Database session
            query: Parsed query descriptor

        Returns:
            Page: Projected items in order plus ``total_count`` before the window
        """
        statement = select(self.model).options(*self.load_options)
        statement = self._filter_engine.apply_filters(statement, query.filters)
        statement = self._sort_engine.apply_sort(statement, query.order)

        with self._store_errors(session, "list"):
            rows, total = self._pagination_engine.paginate_with_count(
                statement, session, query.window
            )
            items = self.projector.apply_many(query.projection, (self.to_read(r) for r in rows))

        logger.debug(
            "Listed %s: page=%d size=%d returned=%d total=%d",
            self.label,
            query.window.page,
            query.window.size,
            len(items),
            total,
        )
        return Page[Dict[str, Any]](items=items, total_count=total)

    def get_by_id(self, session: Session, entity_id: int) -> ReadT:
        """
        Raises:
            NotFound: If no entity has this identity
        """
        with self._store_errors(session, "read"):
            return self.to_read(self._get_or_404(session, entity_id))

    def create(self, session: Session, dto: CreateT, caller: Optional[Caller] = None) -> ReadT:
        """
        Insert a new entity and return its Read DTO, server-computed fields included.

        Raises:
            ValidationError: If a referenced identity does not exist
            ConflictingReference: If the store rejects the insert
        """
        values = self._incoming(dto, self.create_hooks, caller, exclude_unset=False)
        self._check_references(session, values)

        entity = self.model(**values)
        with self._store_errors(session, "create"):
            session.add(entity)
            session.commit()
            session.refresh(entity)
            result = self.to_read(entity)

        logger.info("Created %s %s", self.label, entity.id)
        return result

    def update(
        self,
        session: Session,
        entity_id: int,
        dto: UpdateT,
        caller: Optional[Caller] = None,
    ) -> None:
        """
        Merge the fields set in ``dto`` into the stored entity.

        Fields absent from the DTO (or sent as null) keep their stored value;
        server-owned fields are never taken from the DTO.

        Raises:
            NotFound: If no entity has this identity
            ValidationError: If a referenced identity does not exist
            ConflictingUpdate: If the store detects a concurrent modification
        """
        entity = self._get_or_404(session, entity_id)
        values = self._incoming(dto, self.update_hooks, caller, exclude_unset=True)
        self._check_references(session, values)

        with self._store_errors(session, "update"):
            for key, value in values.items():
                setattr(entity, key, value)
            session.add(entity)
            session.commit()

        logger.info("Updated %s %s fields=%s", self.label, entity_id, sorted(values))

    def delete(self, session: Session, entity_id: int) -> None:
        """
        Permanently remove an entity.

        Raises:
            NotFound: If no entity has this identity
            ConflictingReference: If another record still references it
        """
        entity = self._get_or_404(session, entity_id)
        with self._store_errors(session, "delete"):
            session.delete(entity)
            session.commit()
        logger.info("Deleted %s %s", self.label, entity_id)
        for hook in self.delete_hooks:
            hook(entity)

    # --- Helpers ---

    def _get_or_404(self, session: Session, entity_id: int) -> EntityT:
        if not fits_sql_integer(entity_id):
            raise NotFound(self.label, entity_id)
        entity = session.get(self.model, entity_id, options=self.load_options or None)
        if entity is None:
            raise NotFound(self.label, entity_id)
        return entity

    def _incoming(
        self,
        dto: BaseModel,
        hooks: Sequence[MutationHook],
        caller: Optional[Caller],
        exclude_unset: bool,
    ) -> Dict[str, Any]:
        values = dto.model_dump(exclude_unset=exclude_unset, exclude_none=True)
        values = {k: v for k, v in values.items() if k not in self.server_owned}
        for hook in hooks:
            values = hook(values, caller)
        return values

    def _check_references(self, session: Session, values: Mapping[str, Any]) -> None:
        for attr, target in self.references.items():
            ref = values.get(attr)
            if ref is None:
                continue
            if not fits_sql_integer(ref) or session.get(target, ref) is None:
                raise ValidationError(
                    f"{to_camel(attr)} {ref} does not reference an existing {target.__name__}"
                )

    @contextmanager
    def _store_errors(self, session: Session, action: str) -> Iterator[None]:
        """Translate store failures into the service's error taxonomy"""
        try:
            yield
        except IntegrityError as e:
            session.rollback()
            logger.warning("%s %s rejected by store: %s", self.label, action, e.orig)
            raise ConflictingReference(
                f"Cannot {action} {self.label}: it conflicts with a related record"
            ) from e
        except StaleDataError as e:
            session.rollback()
            logger.warning("%s %s hit a concurrent modification", self.label, action)
            raise ConflictingUpdate(
                f"{self.label} was modified concurrently; reload and retry"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Store failure during %s %s", self.label, action)
            raise StoreError() from e
