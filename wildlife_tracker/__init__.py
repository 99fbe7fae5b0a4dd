"""wildlife-tracker: REST backend with a generic filter/sort/project/paginate engine."""

from . import models as models  # noqa: F401
from .builder import FieldBuilder, FilterBuilder  # noqa: F401
from .config import QueryConfig, Settings  # noqa: F401
from .filters import FILTER_STRATEGIES, FilterEngine, FilterParser  # noqa: F401
from .models import (  # noqa: F401
    Comparison,
    Conjunction,
    Disjunction,
    FilterOperator,
    Links,
    ListQuery,
    Meta,
    OrderSpec,
    OrderTerm,
    Page,
    PageWindow,
    PaginatedResponse,
    Pagination,
    ProjectionSet,
    SortingOrder,
)
from .pagination import PaginationEngine, PaginationPolicy  # noqa: F401
from .projection import FieldProjector  # noqa: F401
from .schema import EntitySchema, FieldDescriptor, SchemaRegistry  # noqa: F401
from .service import EntityService  # noqa: F401
from .sorting import OrderParser, SortEngine  # noqa: F401

__all__ = [
    # Service
    "EntityService",
    # Parsers
    "FilterParser",
    "OrderParser",
    "FieldProjector",
    "PaginationPolicy",
    # Engines
    "FilterEngine",
    "SortEngine",
    "PaginationEngine",
    # Strategy registry
    "FILTER_STRATEGIES",
    # Schemas
    "EntitySchema",
    "FieldDescriptor",
    "SchemaRegistry",
    # Builder
    "FilterBuilder",
    "FieldBuilder",
    # Configuration
    "QueryConfig",
    "Settings",
    # Models
    "Comparison",
    "Conjunction",
    "Disjunction",
    "FilterOperator",
    "SortingOrder",
    "OrderTerm",
    "OrderSpec",
    "PageWindow",
    "ProjectionSet",
    "ListQuery",
    "Page",
    "Pagination",
    "Meta",
    "Links",
    "PaginatedResponse",
    # Module
    "models",
]
