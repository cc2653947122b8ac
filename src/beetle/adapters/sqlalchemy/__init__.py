"""SQLAlchemy adapter package for Beetle."""

from __future__ import annotations

from .context_handler import SqlAlchemyContextHandler
from .engine import StartupError, configured_engine, is_started, session_factory, shutdown, startup
from .metadata import build_metadata, entity_type_for
from .queryable import SqlAlchemyQueryable

__all__ = [
    "SqlAlchemyContextHandler",
    "SqlAlchemyQueryable",
    "StartupError",
    "build_metadata",
    "configured_engine",
    "entity_type_for",
    "is_started",
    "session_factory",
    "shutdown",
    "startup",
]
