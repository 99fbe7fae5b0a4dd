"""Generic CRUD controller: binds HTTP parameters to an EntityService."""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlmodel import Session

from wildlife_tracker.auth import CurrentCaller, current_caller
from wildlife_tracker.db import get_session
from wildlife_tracker.models import PaginatedResponse
from wildlife_tracker.pagination import PaginationEngine
from wildlife_tracker.service import EntityService

SessionDep = Annotated[Session, Depends(get_session)]

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"description": "Invalid parameters or body"},
    status.HTTP_401_UNAUTHORIZED: {"description": "Missing or unknown caller"},
}


class CrudRouter:
    """
    Builds the five CRUD routes of one resource.

    Example:
        router = CrudRouter(habitat_service, "/habitats", tags=["habitats"]).build()
        app.include_router(router, prefix="/api/v1")

    Every route requires an authenticated caller; create and update also
    hand the caller to the service so hooks can bind caller-owned fields.
    """

    def __init__(self, service: EntityService, prefix: str, tags: Optional[List[str]] = None):
        self.service = service
        self.prefix = prefix
        self.tags = tags or [prefix.strip("/")]

    def build(self) -> APIRouter:
        router = APIRouter(
            prefix=self.prefix,
            tags=self.tags,
            dependencies=[Depends(current_caller)],
            responses=ERROR_RESPONSES,
        )
        service = self.service
        create_model = service.create_model
        update_model = service.update_model
        label = service.label

        @router.get(
            "",
            response_model=PaginatedResponse[Dict[str, Any]],
            summary=f"List {label} records",
        )
        def list_items(
            request: Request,
            session: SessionDep,
            page: Optional[int] = Query(None, description="Page number, values below 1 mean 1"),
            size: Optional[int] = Query(None, description="Items per page, clamped to the max"),
            filters: Optional[str] = Query(
                None, description="Comma-separated field:operator:value clauses"
            ),
            fields: Optional[str] = Query(None, description="Comma-separated fields to return"),
            order_by: Optional[str] = Query(
                None, alias="orderBy", description="Comma-separated field[:asc|desc]"
            ),
            search: Optional[str] = Query(None, description="Term matched against searchFields"),
            search_fields: Optional[str] = Query(
                None, alias="searchFields", description="Comma-separated text fields to search"
            ),
        ) -> PaginatedResponse[Dict[str, Any]]:
            query = service.build_query(
                page=page,
                size=size,
                filters=filters,
                fields=fields,
                order_by=order_by,
                search=search,
                search_fields=search_fields,
            )
            result = service.list(session, query)
            return PaginationEngine.build_response(
                url=request.url,
                window=query.window,
                total_count=result.total_count,
                data_page=result.items,
                filters=query.filters.comparisons,
                order_by=query.order.terms,
                fields=sorted(query.projection.fields) if query.projection.fields else None,
            )

        @router.get(
            "/{id}",
            response_model=service.read_model,
            summary=f"Get one {label}",
            responses={status.HTTP_404_NOT_FOUND: {"description": f"{label} not found"}},
        )
        def get_item(id: int, session: SessionDep) -> Any:
            return service.get_by_id(session, id)

        @router.post(
            "",
            response_model=service.read_model,
            status_code=status.HTTP_201_CREATED,
            summary=f"Create a {label}",
        )
        def create_item(item: create_model, session: SessionDep, caller: CurrentCaller) -> Any:
            return service.create(session, item, caller)

        @router.put(
            "/{id}",
            status_code=status.HTTP_204_NO_CONTENT,
            response_class=Response,
            summary=f"Update a {label}",
            responses={
                status.HTTP_404_NOT_FOUND: {"description": f"{label} not found"},
                status.HTTP_409_CONFLICT: {"description": "Concurrent modification"},
            },
        )
        def update_item(
            id: int, item: update_model, session: SessionDep, caller: CurrentCaller
        ) -> Response:
            service.update(session, id, item, caller)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @router.delete(
            "/{id}",
            status_code=status.HTTP_204_NO_CONTENT,
            response_class=Response,
            summary=f"Delete a {label}",
            responses={
                status.HTTP_404_NOT_FOUND: {"description": f"{label} not found"},
                status.HTTP_409_CONFLICT: {"description": "Still referenced by another record"},
            },
        )
        def delete_item(id: int, session: SessionDep) -> Response:
            service.delete(session, id)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        return router
