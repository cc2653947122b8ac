"""Backend-independent save orchestration and query processing."""

from __future__ import annotations

from beetle.domain.errors import (
    BeetleError,
    ConcurrencyConflict,
    InvalidQuery,
    InvalidSaveBundle,
    NotSupported,
    PersistenceFailure,
    ResultCountExceeded,
    TamperDetected,
    TypeNotFound,
    UnmappedEntity,
)
from beetle.domain.hooks import AfterSaveArgs, BeforeSaveArgs, HookEvent, Hooks, QueryHookArgs
from beetle.domain.integrity import check_request_hash, create_query_hash
from beetle.domain.metadata import (
    DataProperty,
    EntityType,
    GenerationPattern,
    Metadata,
    NavigationProperty,
    TypeRegistry,
)
from beetle.domain.model import (
    ActionContext,
    BeetleParameter,
    EntityBag,
    EntityState,
    GeneratedValue,
    ProcessResult,
    SaveContext,
    SaveResult,
)
from beetle.domain.ports import ContextHandler
from beetle.domain.service import BeetleService, out_of_band_headers

__all__ = [  # noqa: RUF022
    # errors
    "BeetleError",
    "ConcurrencyConflict",
    "InvalidQuery",
    "InvalidSaveBundle",
    "NotSupported",
    "PersistenceFailure",
    "ResultCountExceeded",
    "TamperDetected",
    "TypeNotFound",
    "UnmappedEntity",
    # hooks
    "AfterSaveArgs",
    "BeforeSaveArgs",
    "HookEvent",
    "Hooks",
    "QueryHookArgs",
    # integrity
    "check_request_hash",
    "create_query_hash",
    # metadata
    "DataProperty",
    "EntityType",
    "GenerationPattern",
    "Metadata",
    "NavigationProperty",
    "TypeRegistry",
    # request model
    "ActionContext",
    "BeetleParameter",
    "EntityBag",
    "EntityState",
    "GeneratedValue",
    "ProcessResult",
    "SaveContext",
    "SaveResult",
    # orchestration
    "BeetleService",
    "ContextHandler",
    "out_of_band_headers",
]
