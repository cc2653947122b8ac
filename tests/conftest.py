from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from beetle.adapters.memory import InMemoryContextHandler
from beetle.adapters.sqlalchemy import SqlAlchemyContextHandler, shutdown
from beetle.config import BeetleConfig
from beetle.domain.metadata import Metadata  # noqa: TC001
from beetle.domain.service import BeetleService
from tests.helpers.entities import make_metadata
from tests.helpers.sql_models import Customer, Order, start_mappers, table_metadata

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator

_BEETLE_ENV_VARS = (
    "BEETLE_MAX_RESULT_COUNT",
    "BEETLE_CHECK_REQUEST_HASH",
    "BEETLE_MAP_UNKNOWNS",
    "BEETLE_DATA_DIR",
)


@pytest.fixture(autouse=True)
def clean_beetle_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _BEETLE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def metadata() -> Metadata:
    return make_metadata()


@pytest.fixture
def memory_handler(metadata: Metadata) -> InMemoryContextHandler:
    return InMemoryContextHandler(metadata)


@pytest.fixture
def memory_service(memory_handler: InMemoryContextHandler) -> BeetleService[InMemoryContextHandler]:
    return BeetleService(memory_handler, config=BeetleConfig())


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    table_metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def enforcing_sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    start_mappers()
    table_metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True, expire_on_commit=False)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sql_handler(sqlite_session: Session) -> SqlAlchemyContextHandler:
    return SqlAlchemyContextHandler([Customer, Order], sqlite_session, name="shop")


@pytest.fixture
def sql_service(sql_handler: SqlAlchemyContextHandler) -> BeetleService[SqlAlchemyContextHandler]:
    return BeetleService(sql_handler, config=BeetleConfig())


@pytest.fixture
def reset_engine_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()
