"""Tests for PaginationPolicy and PaginationEngine."""

import pytest
from sqlmodel import select
from starlette.datastructures import URL

from wildlife_tracker.config import QueryConfig
from wildlife_tracker.entities import Habitat
from wildlife_tracker.errors import InvalidLiteral
from wildlife_tracker.models import Comparison, FilterOperator, OrderTerm, PageWindow
from wildlife_tracker.pagination import PaginationEngine, PaginationPolicy


@pytest.fixture
def habitats(session):
    items = [Habitat(name=f"Habitat {i:02d}") for i in range(15)]
    session.add_all(items)
    session.commit()
    return items


class TestPaginationPolicy:
    """Tests for page/size normalization."""

    @pytest.mark.parametrize("page,expected", [(None, 1), (-3, 1), (0, 1), (1, 1), (7, 7)])
    def test_validate_page(self, page, expected):
        assert PaginationPolicy().validate_page(page) == expected

    @pytest.mark.parametrize(
        "size,expected", [(None, 10), (0, 1), (-5, 1), (25, 25), (100, 100), (1000, 100)]
    )
    def test_validate_size(self, size, expected):
        assert PaginationPolicy().validate_size(size) == expected

    def test_custom_config(self):
        policy = PaginationPolicy(QueryConfig(max_page_size=20, default_page_size=5))
        assert policy.window(None, None) == PageWindow(page=1, size=5)
        assert policy.window(2, 50) == PageWindow(page=2, size=20)

    def test_max_page_limit(self):
        """Test that pages past max_page fail when deep pagination is disabled."""
        policy = PaginationPolicy(QueryConfig(max_page=3, allow_deep_pagination=False))
        assert policy.validate_page(3) == 3
        with pytest.raises(InvalidLiteral):
            policy.validate_page(4)

    def test_window_offsets(self):
        window = PaginationPolicy().window(3, 10)
        assert window.offset == 20
        assert window.limit == 10


class TestPaginationEngine:
    """Tests for count + window execution."""

    def test_count_total_ignores_order(self, session, habitats):
        query = select(Habitat).order_by(Habitat.name.desc())
        assert PaginationEngine.count_total(query, session) == 15

    def test_paginate_with_count(self, session, habitats):
        query = select(Habitat).order_by(Habitat.id)
        rows, total = PaginationEngine().paginate_with_count(
            query, session, PageWindow(page=2, size=10)
        )
        assert total == 15
        assert [row.name for row in rows] == [f"Habitat {i:02d}" for i in range(10, 15)]

    def test_page_past_end(self, session, habitats):
        rows, total = PaginationEngine().paginate_with_count(
            select(Habitat), session, PageWindow(page=5, size=10)
        )
        assert rows == []
        assert total == 15

    def test_empty_table(self, session):
        rows, total = PaginationEngine().paginate_with_count(
            select(Habitat), session, PageWindow(page=1, size=10)
        )
        assert rows == []
        assert total == 0


class TestBuildResponse:
    """Tests for the list envelope and navigation links."""

    url = URL("http://testserver/api/v1/animals?filters=species:eq:Wolf&page=2&size=10")

    def test_middle_page(self):
        response = PaginationEngine.build_response(
            url=self.url,
            window=PageWindow(page=2, size=10),
            total_count=35,
            data_page=[{"id": 11}],
            filters=[Comparison(field="species", operator=FilterOperator.EQ, value="Wolf")],
            order_by=[OrderTerm(field="id")],
            fields=["id"],
        )

        assert response.meta.pagination.total_pages == 4
        assert response.meta.pagination.total_count == 35
        assert response.links.prev.endswith("page=1&size=10")
        assert response.links.next.endswith("page=3&size=10")
        assert response.links.last.endswith("page=4&size=10")
        assert "filters=species" in response.links.first

    def test_single_page(self):
        response = PaginationEngine.build_response(
            url=self.url, window=PageWindow(page=1, size=10), total_count=3, data_page=[]
        )
        assert response.meta.pagination.total_pages == 1
        assert response.links.next is None
        assert response.links.prev is None
        assert response.meta.filters is None
        assert response.meta.order_by is None

    def test_zero_results_still_have_one_page(self):
        response = PaginationEngine.build_response(
            url=self.url, window=PageWindow(page=1, size=10), total_count=0, data_page=[]
        )
        assert response.meta.pagination.total_pages == 1
        assert response.links.last.endswith("page=1&size=10")

    def test_camel_case_dump(self):
        response = PaginationEngine.build_response(
            url=self.url,
            window=PageWindow(page=1, size=10),
            total_count=3,
            data_page=[],
            order_by=[OrderTerm(field="sightedAt")],
        )
        dumped = response.model_dump(by_alias=True)
        assert dumped["meta"]["pagination"] == {
            "totalCount": 3,
            "totalPages": 1,
            "page": 1,
            "size": 10,
        }
        assert dumped["meta"]["orderBy"] == [{"field": "sightedAt", "order": "asc"}]
