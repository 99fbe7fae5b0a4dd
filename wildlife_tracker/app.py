"""Application factory.

Run with:
    uvicorn wildlife_tracker.app:create_app --factory
"""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from wildlife_tracker.config import Settings, get_settings
from wildlife_tracker.db import create_db_and_tables, make_engine
from wildlife_tracker.errors import WildlifeTrackerError
from wildlife_tracker.images import AnimalImageService
from wildlife_tracker.logging import get_logger, setup_logging
from wildlife_tracker.presence import OnlineUsersTracker
from wildlife_tracker.resources import build_registry, build_routers, build_services

logger = get_logger(__name__)


async def handle_app_error(request: Request, exc: WildlifeTrackerError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.detail, exc_info=exc
        )
    else:
        logger.warning(
            "%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("%s %s -> 400: invalid request", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s store failure", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; defaults to the environment
        engine: Engine to use; defaults to one built from ``settings.database_url``
        configure_logging: Install the stdout log handler

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level)

    engine = engine or make_engine(settings.database_url, echo=settings.echo_sql)
    create_db_and_tables(engine)

    registry = build_registry()
    images = AnimalImageService(settings.image_dir, settings.max_image_bytes)
    services = build_services(registry, settings.query_config(), images)

    app = FastAPI(title="Wildlife Tracker", debug=settings.debug)
    app.state.settings = settings
    app.state.engine = engine
    app.state.registry = registry
    app.state.services = services
    app.state.presence = OnlineUsersTracker(ttl_seconds=settings.presence_ttl_seconds)
    app.state.images = images

    app.add_exception_handler(WildlifeTrackerError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_store_error)

    for router in build_routers(services):
        app.include_router(router, prefix=settings.api_prefix)

    logger.info("Wildlife Tracker ready, %d entity schemas registered", len(registry))
    return app
