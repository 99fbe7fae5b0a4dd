"""Query and response models shared by the query engines"""

from datetime import date, datetime
from enum import StrEnum
from typing import Any, FrozenSet, Generic, List, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterOperator(StrEnum):
    """Filter operators"""

    EQ = "eq"  # equals (=)
    NE = "ne"  # not equals (!=)
    GT = "gt"  # greater than (>)
    GTE = "gte"  # greater than or equal (>=)
    LT = "lt"  # less than (<)
    LTE = "lte"  # less than or equal (<=)

    CONTAINS = "contains"  # %value%, case-insensitive
    STARTS_WITH = "startsWith"  # value%, case-insensitive

    @classmethod
    def _missing_(cls, value: object) -> Optional["FilterOperator"]:
        # Accept starts_with / startswith / STARTSWITH spellings
        if isinstance(value, str):
            normalized = value.replace("_", "").lower()
            for member in cls:
                if member.value.lower() == normalized:
                    return member
        return None


TEXT_OPERATORS = frozenset({FilterOperator.CONTAINS, FilterOperator.STARTS_WITH})


class SortingOrder(StrEnum):
    """Sorting orders"""

    ASC = "asc"  # ascending order
    DESC = "desc"  # descending order


Literal = Union[bool, int, float, datetime, date, str, None]


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    # datetime is a date subclass; compare a datetime column against a date literal by day
    if isinstance(left, datetime) and not isinstance(right, datetime) and isinstance(right, date):
        return left.date(), right
    return left, right


class Comparison(BaseModel):
    """Leaf of a filter tree: ``field operator value``"""

    field: str
    operator: FilterOperator
    value: Literal

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.operator == FilterOperator.EQ:
            return actual == self.value
        if self.operator == FilterOperator.NE:
            # SQL `col != value` never matches NULL
            if actual is None and self.value is not None:
                return False
            return actual != self.value
        if actual is None or self.value is None:
            return False
        if self.operator in TEXT_OPERATORS:
            haystack = str(actual).lower()
            needle = str(self.value).lower()
            if self.operator == FilterOperator.CONTAINS:
                return needle in haystack
            return haystack.startswith(needle)
        left, right = _comparable(actual, self.value)
        if self.operator == FilterOperator.GT:
            return left > right
        if self.operator == FilterOperator.GTE:
            return left >= right
        if self.operator == FilterOperator.LT:
            return left < right
        return left <= right


class Disjunction(BaseModel):
    """A group of comparisons combined with OR logic.

    Used for "search across columns": a single search term matched against
    several fields, AND'd with the rest of the filter tree.
    """

    clauses: List[Comparison]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return any(clause.matches(record) for clause in self.clauses)


class Conjunction(BaseModel):
    """Root of a filter tree; an empty conjunction matches everything"""

    clauses: List[Union[Comparison, Disjunction]] = []

    @property
    def is_trivial(self) -> bool:
        return not self.clauses

    @property
    def comparisons(self) -> List[Comparison]:
        return [c for c in self.clauses if isinstance(c, Comparison)]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(clause.matches(record) for clause in self.clauses)

    def and_(self, other: Union[Comparison, Disjunction, "Conjunction"]) -> "Conjunction":
        """Return a new conjunction with ``other`` AND'd in"""
        if isinstance(other, Conjunction):
            return Conjunction(clauses=[*self.clauses, *other.clauses])
        return Conjunction(clauses=[*self.clauses, other])


FilterExpression = Conjunction


class OrderTerm(BaseModel):
    """One ``(field, direction)`` pair of an order specification"""

    field: str
    order: SortingOrder = SortingOrder.ASC


class OrderSpec(BaseModel):
    """Ordered sequence of order terms; earlier terms win, later ones break ties"""

    terms: List[OrderTerm] = []

    @property
    def fields(self) -> List[str]:
        return [term.field for term in self.terms]


class PageWindow(BaseModel):
    """Normalized pagination window"""

    page: int
    size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


class ProjectionSet(BaseModel):
    """Fields requested by the caller; ``None`` means the full Read DTO"""

    fields: Optional[FrozenSet[str]] = None

    @property
    def is_full(self) -> bool:
        return self.fields is None

    def apply(self, record: Mapping[str, Any]) -> dict[str, Any]:
        if self.fields is None:
            return dict(record)
        return {key: value for key, value in record.items() if key in self.fields}


class ListQuery(BaseModel):
    """Composed query descriptor handed to the entity service"""

    filters: FilterExpression = Conjunction()
    order: OrderSpec = OrderSpec()
    window: PageWindow
    projection: ProjectionSet = ProjectionSet()


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """A window of projected items plus the filtered total"""

    items: List[T]
    total_count: int


class Pagination(ApiModel):
    """Pagination model"""

    total_count: int
    total_pages: int
    page: int
    size: int


class Meta(ApiModel):
    """Meta model"""

    pagination: Pagination
    filters: Optional[List[Comparison]] = None
    order_by: Optional[List[OrderTerm]] = None
    fields: Optional[List[str]] = None


class Links(ApiModel):
    """Links model"""

    self: str
    first: str
    last: str
    next: Optional[str] = None
    prev: Optional[str] = None


class PaginatedResponse(ApiModel, Generic[T]):
    """Paginated response model"""

    data: List[T]
    meta: Meta
    links: Links
