"""Apply query directives to a queryable in a fixed, backend-independent order."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from beetle.domain.errors import ResultCountExceeded
from beetle.domain.hooks import HookEvent, QueryHookArgs, fire_all
from beetle.domain.model import ProcessResult
from beetle.domain.query.options import QueryOptions, parse_query_options

if TYPE_CHECKING:
    from collections.abc import Iterable

    from beetle.domain.hooks import Hooks
    from beetle.domain.model import ActionContext, BeetleParameter
    from beetle.domain.query.queryable import Queryable

log = logging.getLogger(__name__)


def apply_query_options(
    query: Queryable[Any], options: QueryOptions
) -> tuple[Queryable[Any], int | None]:
    """Compose ``options`` onto ``query`` and capture the inline count if requested.

    Order: filter, order, inline count (filtered but not paged), skip, take, expand,
    select. Reordering changes results, e.g. paging before filtering.
    """

    if options.filter is not None:
        query = query.where(options.filter)
    if options.order_by:
        query = query.order_by(options.order_by)
    inline_count = query.count() if options.inline_count else None
    if options.skip is not None:
        query = query.skip(options.skip)
    if options.take is not None:
        query = query.take(options.take)
    if options.expand:
        query = query.include(options.expand)
    if options.select:
        query = query.select(options.select)
    return query, inline_count


class QueryProcessor:
    """Handles queryable action results for a service or a context handler."""

    def handle(
        self,
        query: Queryable[Any],
        parameters: Iterable[BeetleParameter],
        action_context: ActionContext,
        *,
        hooks: tuple[Hooks | None, ...] = (),
    ) -> ProcessResult:
        args = QueryHookArgs(action_context=action_context, query=query)
        fire_all(hooks, HookEvent.BEFORE_HANDLE_QUERY, args)

        options = parse_query_options(parameters)
        log.debug("Handling query for action %s: %s", action_context.name, options)
        args.query, inline_count = apply_query_options(args.query, options)

        fire_all(hooks, HookEvent.BEFORE_QUERY_EXECUTE, args)
        args.result = self.execute(args.query, action_context.max_result_count)
        fire_all(hooks, HookEvent.AFTER_QUERY_EXECUTE, args)

        return ProcessResult(
            action_context=action_context,
            result=args.result,
            inline_count=inline_count,
            user_data=args.user_data,
        )

    def execute(self, query: Queryable[Any], max_result_count: int | None) -> list[Any]:
        if not max_result_count:
            return query.to_list()
        # one extra row is enough to detect an overflow
        result = query.take(max_result_count + 1).to_list()
        if len(result) > max_result_count:
            raise ResultCountExceeded(
                f"Query returned more than the allowed {max_result_count} records"
            )
        return result
