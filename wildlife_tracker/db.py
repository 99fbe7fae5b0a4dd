"""Database engine and per-request sessions."""

from typing import Any, Iterator

from fastapi import Request
from sqlalchemy import Engine, event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Range of the store's INTEGER columns (signed 64-bit)
SQL_INT_MIN = -(2**63)
SQL_INT_MAX = 2**63 - 1


def fits_sql_integer(value: int) -> bool:
    return SQL_INT_MIN <= value <= SQL_INT_MAX


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``url``.

    SQLite engines get foreign key enforcement switched on for every
    connection so deletes blocked by a relation surface as integrity errors.
    In-memory SQLite uses a single shared connection.
    """
    kwargs: dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    """FastAPI dependency yielding one session per request from ``app.state.engine``"""
    with Session(request.app.state.engine) as session:
        yield session
