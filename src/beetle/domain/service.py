"""Per-request coordination of saves and queries around a context handler."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from beetle.config.service import BeetleConfig
from beetle.domain.errors import NotSupported
from beetle.domain.hooks import AfterSaveArgs, BeforeSaveArgs, HookEvent, Hooks, fire_all
from beetle.domain.integrity import check_request_headers
from beetle.domain.model import (
    ActionContext,
    BeetleParameter,
    ProcessResult,
    SaveContext,
    SaveResult,
)
from beetle.domain.query.processor import QueryProcessor
from beetle.domain.query.queryable import as_queryable
from beetle.domain.resolution import coerce_values, populate, resolve_entities
from beetle.domain.schema import parse_save_bundle

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from beetle.domain.metadata import Metadata
    from beetle.domain.model import EntityBag
    from beetle.domain.ports.context_handler import ContextHandler
    from beetle.domain.schema import SaveBundlePayload

log = logging.getLogger(__name__)

INLINE_COUNT_HEADER = "X-InlineCount"
USER_DATA_HEADER = "X-UserData"

type Parameters = Mapping[str, str] | Iterable[BeetleParameter]


class BeetleService[THandler: ContextHandler[Any]]:
    """Save orchestrator and query entry point for one backend.

    The service holds no request state: every call resolves its own entity bags and
    save context, so one instance may serve concurrent requests as long as the
    context handler's persistence context is request-scoped.
    """

    def __init__(
        self,
        context_handler: THandler | None = None,
        *,
        config: BeetleConfig | None = None,
        query_processor: QueryProcessor | None = None,
    ) -> None:
        self.context_handler = context_handler
        self.config = config or BeetleConfig()
        self.query_processor = query_processor or QueryProcessor()
        self.hooks = Hooks()
        if context_handler is not None:
            context_handler.initialize()

    def require_handler(self) -> THandler:
        if self.context_handler is None:
            raise NotSupported("No context handler is configured for this service")
        return self.context_handler

    def metadata(self) -> Metadata | None:
        if self.context_handler is None:
            return None
        return self.context_handler.metadata()

    def create_type(
        self, type_name: str, initial_values: str | Mapping[str, Any] | None = None
    ) -> Any:
        """Create an entity instance, optionally populated from a JSON object."""

        handler = self.require_handler()
        instance = handler.create_instance(type_name)
        if not initial_values:
            return instance
        values = json.loads(initial_values) if isinstance(initial_values, str) else initial_values
        entity_type = handler.metadata().require(type_name)
        return populate(instance, coerce_values(entity_type, values))

    # queries ----------------------------------------------------------------

    def check_request(self, query_string: str, headers: Mapping[str, str]) -> bool:
        """Run the integrity guard when enabled; returns whether a check took place."""

        if not self.config.check_request_hash:
            return False
        return check_request_headers(query_string, dict(headers))

    def process_request(self, action_context: ActionContext) -> ProcessResult:
        if action_context.max_result_count is None:
            action_context.max_result_count = self.config.max_result_count

        handler = self.context_handler
        if handler is not None:
            return handler.process_request(
                action_context.value,
                action_context.parameters,
                action_context,
                service_hooks=self.hooks,
            )

        query = as_queryable(action_context.value)
        if query is None:
            return ProcessResult(action_context=action_context, result=action_context.value)
        return self.query_processor.handle(
            query, action_context.parameters, action_context, hooks=(self.hooks,)
        )

    def execute_action(
        self,
        name: str,
        value: Any,
        parameters: Parameters | None = None,
        *,
        query_string: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        """Check request integrity, then process ``value`` with the given directives."""

        if query_string is not None and headers is not None:
            self.check_request(query_string, headers)
        action_context = ActionContext(
            name=name,
            value=value,
            parameters=_to_parameters(parameters),
            query_string=query_string,
        )
        return self.process_request(action_context)

    def handle_unknown_action(
        self,
        action: str,
        parameters: Parameters | None = None,
        **kwargs: Any,
    ) -> ProcessResult:
        value = self.require_handler().handle_unknown_action(action)
        return self.execute_action(action, value, parameters, **kwargs)

    # saving -----------------------------------------------------------------

    def resolve_entities(
        self, bundle: SaveBundlePayload
    ) -> tuple[list[EntityBag], list[EntityBag]]:
        handler = self.require_handler()
        return resolve_entities(
            bundle, metadata=handler.metadata(), create_instance=handler.create_instance
        )

    def handle_unknowns(self, unknowns: list[EntityBag]) -> list[EntityBag]:
        """Offer entities of unknown types for re-mapping. By default they are discarded."""

        if not unknowns:
            return []
        if self.config.map_unknowns:
            return self.require_handler().handle_unmappeds(unknowns)
        log.warning(
            "Discarding %s entities of unknown types: %s",
            len(unknowns),
            ", ".join(sorted({bag.type_name for bag in unknowns})),
        )
        return []

    def save_changes(self, raw_bundle: object) -> SaveResult:
        handler = self.require_handler()
        bundle = parse_save_bundle(raw_bundle)
        known, unknowns = self.resolve_entities(bundle)

        entity_bags = [*known, *self.handle_unknowns(unknowns)]
        if not entity_bags:
            return SaveResult.EMPTY
        # mapped unknowns rejoin at their submitted positions
        entity_bags.sort(key=lambda bag: bag.index)

        save_context = SaveContext(entity_bags, user_data=dict(bundle.user_data or {}))
        registries = (self.hooks, handler.hooks)
        fire_all(registries, HookEvent.BEFORE_SAVE, BeforeSaveArgs(save_context))
        result = handler.save_changes(save_context)
        fire_all(registries, HookEvent.AFTER_SAVE, AfterSaveArgs(save_context, result))

        log.info(
            "Saved changes: entities=%s, affected=%s, generated=%s",
            len(save_context),
            result.affected_count,
            len(result.generated_values),
        )
        return result


def _to_parameters(parameters: Parameters | None) -> tuple[BeetleParameter, ...]:
    if parameters is None:
        return ()
    if isinstance(parameters, Mapping):
        return tuple(BeetleParameter(name, value) for name, value in parameters.items())
    return tuple(parameters)


def out_of_band_headers(
    process_result: ProcessResult,
    *,
    serializer: Callable[[Any], str] = json.dumps,
) -> dict[str, str]:
    """Render inline count and user data for a side channel such as response headers."""

    headers: dict[str, str] = {}
    if process_result.inline_count is not None:
        headers[INLINE_COUNT_HEADER] = str(process_result.inline_count)
    if process_result.user_data is not None:
        headers[USER_DATA_HEADER] = serializer(process_result.user_data)
    return headers
