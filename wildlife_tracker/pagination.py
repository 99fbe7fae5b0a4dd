"""Pagination policy, paginated execution and response building."""

from math import ceil
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import Select, func
from sqlmodel import Session, select
from starlette.datastructures import URL

from wildlife_tracker.config import QueryConfig
from wildlife_tracker.errors import InvalidLiteral
from wildlife_tracker.models import (
    Comparison,
    Links,
    Meta,
    OrderTerm,
    PageWindow,
    PaginatedResponse,
    Pagination,
)


class PaginationPolicy:
    """
    Normalizes ``page``/``size`` query parameters into a bounded window.

    ``page`` below 1 becomes 1, a missing ``size`` becomes the configured
    default and any other ``size`` is clamped into ``[min, max]``. Nothing
    here fails except an explicit ``max_page`` limit.
    """

    def __init__(self, config: Optional[QueryConfig] = None):
        self.config = config or QueryConfig()

    def validate_page(self, page: Optional[int]) -> int:
        """
        Validate and constrain a page number.

        Args:
            page: Requested page number

        Returns:
            int: Valid page number

        Raises:
            InvalidLiteral: If page exceeds max_page and deep pagination is disabled
        """
        if page is None or page < 1:
            return 1
        if not self.config.allow_deep_pagination and self.config.max_page is not None:
            if page > self.config.max_page:
                raise InvalidLiteral(
                    "page", page, f"a page no greater than {self.config.max_page}"
                )
        return page

    def validate_size(self, size: Optional[int]) -> int:
        """
        Validate and constrain items per page.

        Args:
            size: Requested items per page

        Returns:
            int: Valid size, constrained to min/max bounds
        """
        if size is None:
            return self.config.default_page_size
        if size < self.config.min_page_size:
            return self.config.min_page_size
        if size > self.config.max_page_size:
            return self.config.max_page_size
        return size

    def window(self, page: Optional[int], size: Optional[int]) -> PageWindow:
        return PageWindow(page=self.validate_page(page), size=self.validate_size(size))


class PaginationEngine:
    """Engine for executing a windowed query together with its total count."""

    @staticmethod
    def count_total(query: Select, session: Session) -> int:
        """
        Count total items matching the query.

        Args:
            query: SQLAlchemy Select query with filters applied
            session: Database session

        Returns:
            int: Total count of items
        """
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        return session.exec(count_query).one()

    @staticmethod
    def paginate(query: Select, session: Session, window: PageWindow) -> Sequence[Any]:
        """
        Execute a query restricted to a page window.

        Args:
            query: SQLAlchemy Select query (filtered and ordered)
            session: Database session
            window: Page window

        Returns:
            Sequence[Any]: Rows of the page
        """
        return session.exec(query.offset(window.offset).limit(window.limit)).all()

    def paginate_with_count(
        self, query: Select, session: Session, window: PageWindow
    ) -> Tuple[Sequence[Any], int]:
        """
        Count the full filtered result, then fetch one window of it.

        Args:
            query: SQLAlchemy Select query (with filters/sort already applied)
            session: Database session
            window: Page window

        Returns:
            Tuple[Sequence[Any], int]: (page_data, total_count)
        """
        total = self.count_total(query, session)
        if total == 0 or window.offset >= total:
            return [], total
        return self.paginate(query, session, window), total

    # --- Response building ---

    @staticmethod
    def build_response(
        url: URL,
        window: PageWindow,
        total_count: int,
        data_page: List[Any],
        filters: Optional[List[Comparison]] = None,
        order_by: Optional[List[OrderTerm]] = None,
        fields: Optional[List[str]] = None,
    ) -> PaginatedResponse[Any]:
        """
        Build the final paginated response with navigation links.

        Args:
            url: Request URL, reused for link generation
            window: Page window that was served
            total_count: Total number of items matching filters
            data_page: Current page of (projected) data
            filters: Active comparisons (for meta)
            order_by: Active order terms (for meta)
            fields: Active projection (for meta)

        Returns:
            PaginatedResponse: Final response object
        """
        size = window.size
        current_page = window.page
        total_pages = max(1, ceil(total_count / size))

        def link(page: int) -> str:
            return str(url.include_query_params(page=page, size=size))

        return PaginatedResponse(
            data=data_page,
            meta=Meta(
                pagination=Pagination(
                    total_count=total_count,
                    total_pages=total_pages,
                    page=current_page,
                    size=size,
                ),
                filters=filters or None,
                order_by=order_by or None,
                fields=fields,
            ),
            links=Links(
                self=link(current_page),
                first=link(1),
                last=link(total_pages),
                next=link(current_page + 1) if current_page < total_pages else None,
                prev=link(current_page - 1) if current_page > 1 else None,
            ),
        )
