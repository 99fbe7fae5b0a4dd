"""Order specification parser and the sort engine."""

from typing import Any, List, Optional

from sqlalchemy import Select

from wildlife_tracker.errors import InvalidLiteral
from wildlife_tracker.models import OrderSpec, OrderTerm, SortingOrder
from wildlife_tracker.schema import EntitySchema


class OrderParser:
    """
    Parser for ``orderBy`` strings such as ``sightedAt:desc,id``.

    Terms without a direction suffix sort ascending. The identity field is
    appended as a final ascending term unless already present, so repeated
    calls against an unchanged dataset always page the same way.
    """

    def __init__(self, schema: EntitySchema):
        self.schema = schema

    def parse(self, raw: Optional[str]) -> OrderSpec:
        """
        Parse an order string.

        Args:
            raw: Order string; empty or ``None`` means ascending by identity

        Returns:
            OrderSpec: Ordered terms ending with the identity tie-breaker

        Raises:
            UnknownField: If a field is not orderable on this entity
            InvalidLiteral: If a direction is neither ``asc`` nor ``desc``
        """
        terms: List[OrderTerm] = []
        for token in (raw or "").split(","):
            token = token.strip()
            if not token:
                continue
            name, _, direction = token.partition(":")
            descriptor = self.schema.require(name, "orderable")
            terms.append(OrderTerm(field=descriptor.name, order=self._direction(token, direction)))

        identity = self.schema.identity_field.name
        if identity not in (term.field for term in terms):
            terms.append(OrderTerm(field=identity, order=SortingOrder.ASC))
        return OrderSpec(terms=terms)

    @staticmethod
    def _direction(token: str, raw: str) -> SortingOrder:
        raw = raw.strip().lower()
        if not raw:
            return SortingOrder.ASC
        try:
            return SortingOrder(raw)
        except ValueError:
            raise InvalidLiteral(token, raw, "'asc' or 'desc'") from None


class SortEngine:
    """
    Engine for applying an order specification to SQL queries.

    Handles column resolution (including computed fields) and sort direction.
    """

    def __init__(self, schema: EntitySchema):
        """
        Initialize SortEngine.

        Args:
            schema: Schema of the entity being sorted
        """
        self.schema = schema

    def order_clauses(self, order: OrderSpec) -> List[Any]:
        clauses = []
        for term in order.terms:
            column = self.schema.column(self.schema.require(term.field, "orderable"))
            clauses.append(column.desc() if term.order == SortingOrder.DESC else column.asc())
        return clauses

    def apply_sort(self, query: Select, order: Optional[OrderSpec]) -> Select:
        """
        Apply sorting to a query.

        Args:
            query: Base SQLAlchemy Select query
            order: Order specification

        Returns:
            Select: Query with ORDER BY applied
        """
        if not order or not order.terms:
            return query
        return query.order_by(*self.order_clauses(order))
