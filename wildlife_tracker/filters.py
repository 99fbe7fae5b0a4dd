"""Filter expression parser and the SQL filter engine.

Filter strings look like ``species:eq:Wolf,sightedAt:gte:2024-01-01``: a
comma-separated list of ``field:operator:value`` clauses that are AND'd
together. The parser validates fields against an :class:`EntitySchema` and
coerces literals to the field's declared type; the engine compiles the
resulting tree into SQLAlchemy conditions using the strategy pattern.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from dateutil.parser import ParserError, parse
from sqlalchemy import ColumnElement, Select, and_, func, or_

from wildlife_tracker.db import fits_sql_integer
from wildlife_tracker.errors import InvalidLiteral, InvalidOperator, MalformedQuery
from wildlife_tracker.models import (
    TEXT_OPERATORS,
    Comparison,
    Conjunction,
    Disjunction,
    FilterExpression,
    FilterOperator,
)
from wildlife_tracker.schema import EntitySchema, FieldDescriptor

CLAUSE_SEPARATOR = ","
PART_SEPARATOR = ":"

_TRUE = {"true", "1", "t", "yes", "y"}
_FALSE = {"false", "0", "f", "no", "n"}

# Type alias for filter strategy functions
FilterStrategyFn = Callable[[ColumnElement[Any], Any], Any]


def _coerce_value(descriptor: FieldDescriptor, raw: str) -> Any:
    """
    Coerce a raw string literal to the field's declared Python type.

    Args:
        descriptor: Target field
        raw: Raw literal from the filter string

    Returns:
        Any: Coerced value

    Raises:
        InvalidLiteral: If the literal does not fit the declared type
    """
    pytype = descriptor.python_type
    if pytype is None or pytype is str:
        return raw
    if pytype is bool:
        val = raw.strip().lower()
        if val in _TRUE:
            return True
        if val in _FALSE:
            return False
        raise InvalidLiteral(descriptor.name, raw, "a boolean")
    if pytype is int:
        try:
            value = int(raw)
        except ValueError:
            raise InvalidLiteral(descriptor.name, raw, "an integer") from None
        if not fits_sql_integer(value):
            raise InvalidLiteral(descriptor.name, raw, "a 64-bit integer")
        return value
    if pytype is float:
        try:
            return float(raw)
        except ValueError:
            raise InvalidLiteral(descriptor.name, raw, "a number") from None
    if pytype is datetime:
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            try:
                return parse(raw)
            except (ParserError, ValueError, OverflowError):
                raise InvalidLiteral(descriptor.name, raw, "a date-time") from None
    if pytype is date:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            try:
                return parse(raw).date()
            except (ParserError, ValueError, OverflowError):
                raise InvalidLiteral(descriptor.name, raw, "a date") from None
    try:
        return pytype(raw)
    except (TypeError, ValueError):
        raise InvalidLiteral(descriptor.name, raw, pytype.__name__) from None


def _split_clauses(raw: str) -> List[str]:
    """
    Split a filter string into non-empty clauses.

    Args:
        raw: Raw filter string

    Returns:
        List[str]: Stripped clauses
    """
    return [item.strip() for item in raw.split(CLAUSE_SEPARATOR) if item.strip()]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _ilike_supported(col: ColumnElement[Any]) -> bool:
    """
    Check if ILIKE is supported for this column.

    Args:
        col: SQLAlchemy column element

    Returns:
        bool: True if ILIKE is supported
    """
    return hasattr(col, "ilike")


def _case_insensitive_like(column: ColumnElement[Any], pattern: str) -> Any:
    if _ilike_supported(column):
        return column.ilike(pattern, escape="\\")
    return func.lower(column).like(pattern.lower(), escape="\\")


class FilterParser:
    """
    Parser for textual filter expressions of one entity.

    Example:
        parser = FilterParser(schema)
        expression = parser.parse("species:eq:Wolf,count:gte:2")
    """

    def __init__(self, schema: EntitySchema):
        self.schema = schema

    def parse(self, raw: Optional[str]) -> FilterExpression:
        """
        Parse a filter string into a filter tree.

        Args:
            raw: Filter string; empty or ``None`` means no filtering

        Returns:
            FilterExpression: Conjunction of the parsed comparisons

        Raises:
            MalformedQuery: If a clause is not ``field:operator:value``
            UnknownField: If a field is not filterable on this entity
            InvalidOperator: If an operator is unknown or not valid for the field type
            InvalidLiteral: If a value does not match the field type
        """
        if not raw or not raw.strip():
            return Conjunction()
        return Conjunction(clauses=[self.parse_clause(clause) for clause in _split_clauses(raw)])

    def parse_clause(self, clause: str) -> Comparison:
        parts = clause.split(PART_SEPARATOR, 2)
        if len(parts) != 3:
            raise MalformedQuery(
                f"Invalid filter clause '{clause}'. Expected 'field:operator:value'."
            )
        field, operator, value = (part.strip() for part in parts)
        return self.comparison(field, operator, value)

    def comparison(
        self, field: str, operator: Union[str, FilterOperator], value: str
    ) -> Comparison:
        """
        Build a validated comparison node.

        Args:
            field: Field name (wire name, attribute name or alias)
            operator: Operator token
            value: Raw literal

        Returns:
            Comparison: Comparison on the field's wire name with a typed value
        """
        descriptor = self.schema.require(field, "filterable")
        try:
            op = FilterOperator(operator)
        except ValueError:
            raise InvalidOperator(descriptor.name, str(operator)) from None
        if op in TEXT_OPERATORS:
            if descriptor.python_type not in (str, None):
                raise InvalidOperator(descriptor.name, op.value, "only valid on text fields")
            return Comparison(field=descriptor.name, operator=op, value=value)
        coerced = _coerce_value(descriptor, value)
        return Comparison(field=descriptor.name, operator=op, value=coerced)

    def parse_search(self, term: Optional[str], fields: Optional[str]) -> Optional[Disjunction]:
        """
        Build an OR group matching ``term`` against each of ``fields``.

        Args:
            term: Search term; empty means no search
            fields: Comma-separated text fields to search

        Returns:
            Optional[Disjunction]: OR group of case-insensitive CONTAINS comparisons

        Raises:
            MalformedQuery: If a term is given without fields
        """
        if not term:
            return None
        names = _split_clauses(fields or "")
        if not names:
            raise MalformedQuery(
                "'searchFields' is required when 'search' is provided. "
                "Specify comma-separated field names, e.g. searchFields=name,species"
            )
        return Disjunction(
            clauses=[self.comparison(name, FilterOperator.CONTAINS, term) for name in names]
        )


# --- Strategy functions for each filter operator ---


def _strategy_eq(column: ColumnElement[Any], value: Any) -> Any:
    if value is None:
        return column.is_(None)
    return column == value


def _strategy_ne(column: ColumnElement[Any], value: Any) -> Any:
    if value is None:
        return column.is_not(None)
    return column != value


def _strategy_gt(column: ColumnElement[Any], value: Any) -> Any:
    return column > value


def _strategy_gte(column: ColumnElement[Any], value: Any) -> Any:
    return column >= value


def _strategy_lt(column: ColumnElement[Any], value: Any) -> Any:
    return column < value


def _strategy_lte(column: ColumnElement[Any], value: Any) -> Any:
    return column <= value


def _strategy_contains(column: ColumnElement[Any], value: Any) -> Any:
    return _case_insensitive_like(column, f"%{_escape_like(str(value))}%")


def _strategy_starts_with(column: ColumnElement[Any], value: Any) -> Any:
    return _case_insensitive_like(column, f"{_escape_like(str(value))}%")


# Strategy registry: maps FilterOperator -> handler function
FILTER_STRATEGIES: Dict[FilterOperator, FilterStrategyFn] = {
    FilterOperator.EQ: _strategy_eq,
    FilterOperator.NE: _strategy_ne,
    FilterOperator.GT: _strategy_gt,
    FilterOperator.GTE: _strategy_gte,
    FilterOperator.LT: _strategy_lt,
    FilterOperator.LTE: _strategy_lte,
    FilterOperator.CONTAINS: _strategy_contains,
    FilterOperator.STARTS_WITH: _strategy_starts_with,
}


class FilterEngine:
    """
    Engine for compiling filter trees into SQL conditions.

    Uses the strategy pattern to dispatch comparisons by operator type.
    Custom strategies can be registered to extend or override operators.
    """

    def __init__(self, schema: EntitySchema):
        """
        Initialize FilterEngine.

        Args:
            schema: Schema of the entity being filtered
        """
        self.schema = schema

    def build_condition(self, node: Union[Comparison, Disjunction, Conjunction]) -> Optional[Any]:
        """
        Build a SQL condition for a filter tree node.

        Args:
            node: Comparison, Disjunction or Conjunction

        Returns:
            Optional[Any]: SQLAlchemy condition, or None for an empty group
        """
        if isinstance(node, Comparison):
            descriptor = self.schema.require(node.field, "filterable")
            strategy = FILTER_STRATEGIES[node.operator]
            return strategy(self.schema.column(descriptor), node.value)

        conditions = [c for c in (self.build_condition(n) for n in node.clauses) if c is not None]
        if not conditions:
            return None
        if isinstance(node, Disjunction):
            return or_(*conditions)
        return and_(*conditions)

    def apply_filters(self, query: Select, expression: Optional[FilterExpression]) -> Select:
        """
        Apply a filter tree to a query.

        Args:
            query: Base SQLAlchemy Select query
            expression: Filter tree to apply

        Returns:
            Select: Query with filters applied
        """
        if expression is None or expression.is_trivial:
            return query
        condition = self.build_condition(expression)
        if condition is not None:
            query = query.where(condition)
        return query

    @staticmethod
    def register_strategy(operator: FilterOperator, strategy: FilterStrategyFn) -> None:
        """
        Register a custom filter strategy for an operator.

        Args:
            operator: The FilterOperator to register for
            strategy: A callable with signature (column, value) -> condition

        Example:
            def exact_case_contains(column, value):
                return column.contains(value)

            FilterEngine.register_strategy(FilterOperator.CONTAINS, exact_case_contains)
        """
        FILTER_STRATEGIES[operator] = strategy
