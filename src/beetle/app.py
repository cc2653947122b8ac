"""Application wiring entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any

from beetle.adapters.memory import InMemoryContextHandler
from beetle.adapters.sqlalchemy import (
    SqlAlchemyContextHandler,
    is_started,
    session_factory,
    startup,
)
from beetle.config import get_beetle_config
from beetle.domain.service import BeetleService

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sqlalchemy import MetaData
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session

    from beetle.config import BeetleConfig
    from beetle.domain.metadata import Metadata
    from beetle.domain.model import ProcessResult

log = getLogger(__name__)


def create_memory_service(
    metadata: Metadata, *, config: BeetleConfig | None = None
) -> BeetleService[InMemoryContextHandler]:
    """Build a service over an in-process store described by ``metadata``."""

    handler = InMemoryContextHandler(metadata)
    service = BeetleService(handler, config=config or get_beetle_config())
    log.info("Created in-memory service for types: %s", ", ".join(metadata.type_names))
    return service


def create_sqlalchemy_service(
    mapped_classes: Iterable[type],
    *,
    session: Session | None = None,
    engine: Engine | None = None,
    database_uri: str | None = None,
    table_metadata: MetaData | None = None,
    config: BeetleConfig | None = None,
) -> BeetleService[SqlAlchemyContextHandler]:
    """Build a service over SQLAlchemy mapped classes.

    Without an explicit ``session`` the adapter engine is started on demand (from
    ``engine``, ``database_uri`` or ``DATABASE_URI``) and each service gets its own
    session from the shared factory.
    """

    factory = None
    if session is None:
        if not is_started():
            startup(engine=engine, database_uri=database_uri, metadata=table_metadata)
        factory = session_factory()
    handler = SqlAlchemyContextHandler(mapped_classes, session, session_factory=factory)
    return BeetleService(handler, config=config or get_beetle_config())


def query_records(
    records: Iterable[Any],
    parameters: Mapping[str, str],
    *,
    config: BeetleConfig | None = None,
) -> ProcessResult:
    """Run query directives against plain records without any backend."""

    service: BeetleService[Any] = BeetleService(config=config or get_beetle_config())
    return service.execute_action("query", list(records), parameters)
