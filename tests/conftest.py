"""Pytest fixtures: in-memory SQLite, services, application and client."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from tests.seed import seed_animals, seed_users
from wildlife_tracker.app import create_app
from wildlife_tracker.config import Settings
from wildlife_tracker.db import get_session, make_engine
from wildlife_tracker.resources import build_registry, build_services


@pytest.fixture(name="engine")
def engine_fixture():
    engine = make_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="registry")
def registry_fixture():
    return build_registry()


@pytest.fixture(name="services")
def services_fixture(registry):
    return build_services(registry)


@pytest.fixture(name="users")
def users_fixture(session):
    return seed_users(session)


@pytest.fixture(name="animals")
def animals_fixture(session):
    return seed_animals(session)


@pytest.fixture(name="app")
def app_fixture(engine, session, tmp_path):
    settings = Settings(
        database_url="sqlite://", image_dir=str(tmp_path / "images"), max_image_bytes=1024
    )
    app = create_app(settings, engine=engine, configure_logging=False)

    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(app):
    return TestClient(app)


@pytest.fixture(name="auth")
def auth_fixture(users):
    """Headers of an authenticated request made by alice"""
    return {"X-User-Id": str(users[0].id)}
