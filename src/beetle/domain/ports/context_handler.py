"""Backend adapter contract.

A context handler proxies one persistence engine (an ORM session, an in-process
store, ...). Services use it to read metadata, create entity instances, apply
change-sets and run queries without knowing the engine behind it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from beetle.domain.errors import NotSupported, UnmappedEntity
from beetle.domain.generated_values import get_generated_values
from beetle.domain.hooks import Hooks
from beetle.domain.metadata import TypeRegistry
from beetle.domain.model import EntityBag, GeneratedValue, ProcessResult
from beetle.domain.query.processor import QueryProcessor
from beetle.domain.query.queryable import as_queryable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from beetle.domain.metadata import EntityType, Metadata
    from beetle.domain.model import ActionContext, BeetleParameter, SaveContext, SaveResult
    from beetle.domain.query.queryable import Queryable

log = logging.getLogger(__name__)

type GeneratedValuesReporter = Callable[[Sequence[EntityBag]], Iterable[GeneratedValue]]


class ContextHandler[TContext](ABC):
    """Capability set every backend adapter implements.

    ``metadata`` and ``save_changes`` are required. Optional capabilities are
    explicit fields: ``generated_values_reporter`` replaces the metadata based
    derivation for engines that report generated values themselves.
    """

    def __init__(
        self,
        context: TContext | None = None,
        *,
        query_processor: QueryProcessor | None = None,
        generated_values_reporter: GeneratedValuesReporter | None = None,
    ) -> None:
        self._context = context
        self._registry: TypeRegistry | None = None
        self.query_processor = query_processor or QueryProcessor()
        self.generated_values_reporter = generated_values_reporter
        self.hooks = Hooks()

    def initialize(self) -> None:
        """Create the persistence context unless one was injected. Safe to call repeatedly."""

        if self._context is None:
            self._context = self.create_context()
        if self._registry is None:
            self._registry = TypeRegistry.from_metadata(self.metadata())

    def create_context(self) -> TContext:
        raise NotSupported(f"{type(self).__name__} needs an injected persistence context")

    @property
    def context(self) -> TContext:
        if self._context is None:
            self.initialize()
        assert self._context is not None
        return self._context

    @property
    def registry(self) -> TypeRegistry:
        if self._registry is None:
            self._registry = TypeRegistry.from_metadata(self.metadata())
        return self._registry

    @abstractmethod
    def metadata(self) -> Metadata:
        """Describe every persistable type of the backend."""
        ...

    def create_instance(self, type_name: str) -> Any:
        """Instantiate the named entity type; raises ``TypeNotFound`` for unknown names."""

        return self.registry.create(type_name)

    def handle_unknown_action(self, action: str) -> Any:
        raise NotSupported(f"Unknown action: {action}")

    # queries ----------------------------------------------------------------

    def as_queryable(self, value: Any) -> Queryable[Any] | None:
        return as_queryable(value)

    def process_request(
        self,
        value: Any,
        parameters: Iterable[BeetleParameter],
        action_context: ActionContext,
        *,
        service_hooks: Hooks | None = None,
    ) -> ProcessResult:
        """Run query directives against sequence results; wrap anything else as-is."""

        query = self.as_queryable(value)
        if query is None:
            return ProcessResult(action_context=action_context, result=value)
        return self.query_processor.handle(
            query, parameters, action_context, hooks=(service_hooks, self.hooks)
        )

    # unmapped entities --------------------------------------------------------

    def handle_unmappeds(self, unmappeds: Iterable[EntityBag]) -> list[EntityBag]:
        """Map entities outside the known types (DTOs, view shapes) onto persistence types."""

        mapped: list[EntityBag] = []
        for bag in unmappeds:
            client = self.map_to_entity(bag.type_name, bag.client_entity)
            server = self.map_to_entity(bag.type_name, bag.entity)
            entity_type = self.entity_type_of(server) if server is not None else None
            if client is None or server is None or entity_type is None:
                raise UnmappedEntity(f"No mapping available for {bag.type_name}", index=bag.index)
            original_values = (
                None
                if bag.original_values is None
                else self.map_properties(bag.type_name, bag.entity, bag.original_values)
            )
            mapped.append(
                bag.derive(
                    client_entity=client,
                    entity=server,
                    entity_type=entity_type,
                    original_values=original_values,
                )
            )
        return mapped

    def map_to_entity(self, type_name: str, unmapped: Mapping[str, Any]) -> Any | None:
        """Return a persistence entity for ``unmapped``; ``None`` means no mapping."""

        _ = (type_name, unmapped)
        return None

    def map_properties(
        self,
        type_name: str,
        unmapped: Mapping[str, Any],
        original_values: Mapping[str, Any],
    ) -> dict[str, Any] | None:
        """Translate original values of an unmapped shape to entity property names."""

        _ = (type_name, unmapped, original_values)
        return None

    def entity_type_of(self, entity: object) -> EntityType | None:
        return self.metadata().find_for_instance(entity)

    # saving -----------------------------------------------------------------

    @abstractmethod
    def save_changes(self, save_context: SaveContext) -> SaveResult:
        """Apply every bag as one atomic unit: all succeed or none do."""
        ...

    def get_generated_values(self, entity_bags: Sequence[EntityBag]) -> list[GeneratedValue]:
        if self.generated_values_reporter is not None:
            return list(self.generated_values_reporter(entity_bags))
        return get_generated_values(entity_bags, self.metadata())
