"""FilterBuilder API for creating filter strings with a fluent interface."""

from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from wildlife_tracker.filters import CLAUSE_SEPARATOR, PART_SEPARATOR, FilterParser
from wildlife_tracker.models import FilterExpression, FilterOperator

Value = Union[str, int, float, bool, date, datetime]


class FieldBuilder:
    """
    Builder for a single field's filter conditions.

    Provides a fluent interface for building filter conditions on a specific field.
    """

    def __init__(self, filter_builder: "FilterBuilder", field: str):
        """
        Initialize FieldBuilder.

        Args:
            filter_builder: Parent FilterBuilder instance
            field: Field name to build filters for
        """
        self._filter_builder = filter_builder
        self._field = field

    def _add_clause(self, operator: FilterOperator, value: Value) -> "FilterBuilder":
        """Add a clause and return the parent builder."""
        self._filter_builder._clauses.append((self._field, operator, self._to_str(value)))
        return self._filter_builder

    @staticmethod
    def _to_str(value: Value) -> str:
        """Convert a value to its literal representation."""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        text = str(value)
        if CLAUSE_SEPARATOR in text:
            raise ValueError(f"Filter values cannot contain '{CLAUSE_SEPARATOR}': {text!r}")
        return text

    def eq(self, value: Value) -> "FilterBuilder":
        """Equal to (=)."""
        return self._add_clause(FilterOperator.EQ, value)

    def ne(self, value: Value) -> "FilterBuilder":
        """Not equal to (!=)."""
        return self._add_clause(FilterOperator.NE, value)

    def gt(self, value: Value) -> "FilterBuilder":
        """Greater than (>)."""
        return self._add_clause(FilterOperator.GT, value)

    def gte(self, value: Value) -> "FilterBuilder":
        """Greater than or equal to (>=)."""
        return self._add_clause(FilterOperator.GTE, value)

    def lt(self, value: Value) -> "FilterBuilder":
        """Less than (<)."""
        return self._add_clause(FilterOperator.LT, value)

    def lte(self, value: Value) -> "FilterBuilder":
        """Less than or equal to (<=)."""
        return self._add_clause(FilterOperator.LTE, value)

    def between(self, low: Value, high: Value) -> "FilterBuilder":
        """
        Inclusive range, expressed as a ``gte`` and an ``lte`` clause.

        Args:
            low: Lower bound
            high: Upper bound

        Returns:
            FilterBuilder: Parent builder for chaining
        """
        self._add_clause(FilterOperator.GTE, low)
        return self._add_clause(FilterOperator.LTE, high)

    def contains(self, substring: str) -> "FilterBuilder":
        """Contains substring (case-insensitive)."""
        return self._add_clause(FilterOperator.CONTAINS, substring)

    def starts_with(self, prefix: str) -> "FilterBuilder":
        """Starts with prefix (case-insensitive)."""
        return self._add_clause(FilterOperator.STARTS_WITH, prefix)


class FilterBuilder:
    """
    Fluent builder for filter strings.

    Example usage:
        filters = (
            FilterBuilder()
            .where("species").eq("Wolf")
            .where("sightedAt").gte(date(2024, 1, 1))
            .build()
        )
        # "species:eq:Wolf,sightedAt:gte:2024-01-01"

    The result can be sent as the ``filters`` query parameter or parsed
    directly with :meth:`parse_with`.
    """

    def __init__(self):
        """Initialize an empty FilterBuilder."""
        self._clauses: List[Tuple[str, FilterOperator, str]] = []

    def where(self, field: str) -> FieldBuilder:
        """
        Start building a filter for a field.

        Args:
            field: Name of the field to filter on

        Returns:
            FieldBuilder: Builder for the field's filter condition
        """
        return FieldBuilder(self, field)

    def build(self) -> Optional[str]:
        """
        Build the filter string.

        Returns:
            Optional[str]: Filter string, or None if empty
        """
        if not self._clauses:
            return None
        return CLAUSE_SEPARATOR.join(
            PART_SEPARATOR.join((field, operator.value, value))
            for field, operator, value in self._clauses
        )

    def parse_with(self, parser: FilterParser) -> FilterExpression:
        """Validate the built clauses against an entity schema."""
        return parser.parse(self.build())

    def __len__(self) -> int:
        """Return the number of clauses."""
        return len(self._clauses)

    def __bool__(self) -> bool:
        """Return True if there are any clauses."""
        return bool(self._clauses)
