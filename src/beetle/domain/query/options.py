"""Translate already-parsed query directives into query options."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from beetle.domain.errors import InvalidQuery
from beetle.domain.query.expressions import (
    Logical,
    LogicalOp,
    Node,
    SortKey,
    parse_filter,
    parse_member_paths,
    parse_order_by,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from beetle.domain.model import BeetleParameter


class Directive(StrEnum):
    FILTER = "filter"
    ORDER_BY = "orderBy"
    SKIP = "skip"
    TAKE = "take"
    EXPAND = "expand"
    INLINE_COUNT = "inlineCount"
    SELECT = "select"


_DIRECTIVE_ALIASES: Final[dict[str, Directive]] = {
    "filter": Directive.FILTER,
    "$filter": Directive.FILTER,
    "where": Directive.FILTER,
    "orderby": Directive.ORDER_BY,
    "$orderby": Directive.ORDER_BY,
    "skip": Directive.SKIP,
    "$skip": Directive.SKIP,
    "take": Directive.TAKE,
    "top": Directive.TAKE,
    "$top": Directive.TAKE,
    "expand": Directive.EXPAND,
    "$expand": Directive.EXPAND,
    "include": Directive.EXPAND,
    "inlinecount": Directive.INLINE_COUNT,
    "$inlinecount": Directive.INLINE_COUNT,
    "select": Directive.SELECT,
    "$select": Directive.SELECT,
}
_INLINE_COUNT_ON: Final[frozenset[str]] = frozenset({"true", "1", "allpages"})
_INLINE_COUNT_OFF: Final[frozenset[str]] = frozenset({"false", "0", "none"})


@dataclass(frozen=True, slots=True)
class QueryOptions:
    filter: Node | None = None
    order_by: tuple[SortKey, ...] = ()
    skip: int | None = None
    take: int | None = None
    expand: tuple[tuple[str, ...], ...] = ()
    inline_count: bool = False
    select: tuple[tuple[str, ...], ...] = ()

    @property
    def is_empty(self) -> bool:
        return self == QueryOptions()


def _parse_count(directive: Directive, value: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        raise InvalidQuery(f"{directive.value} must be an integer, got {value!r}") from None
    if parsed < 0:
        raise InvalidQuery(f"{directive.value} must be non-negative, got {parsed}")
    return parsed


def _parse_inline_count(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _INLINE_COUNT_ON:
        return True
    if normalized in _INLINE_COUNT_OFF:
        return False
    raise InvalidQuery(f"Invalid inlineCount value: {value!r}")


def parse_query_options(parameters: Iterable[BeetleParameter]) -> QueryOptions:
    """Build :class:`QueryOptions`, rejecting unknown, repeated or malformed directives.

    Filters may repeat and are AND-combined; every other directive may appear once.
    """

    filters: list[Node] = []
    seen: set[Directive] = set()
    values: dict[str, object] = {}
    for parameter in parameters:
        directive = _DIRECTIVE_ALIASES.get(parameter.name.strip().lower())
        if directive is None:
            raise InvalidQuery(f"Unknown query directive: {parameter.name!r}")
        if directive is Directive.FILTER:
            filters.append(parse_filter(parameter.value))
            continue
        if directive in seen:
            raise InvalidQuery(f"Duplicate query directive: {parameter.name!r}")
        seen.add(directive)
        match directive:
            case Directive.ORDER_BY:
                values["order_by"] = parse_order_by(parameter.value)
            case Directive.SKIP:
                values["skip"] = _parse_count(directive, parameter.value)
            case Directive.TAKE:
                values["take"] = _parse_count(directive, parameter.value)
            case Directive.EXPAND:
                values["expand"] = parse_member_paths(parameter.value)
            case Directive.INLINE_COUNT:
                values["inline_count"] = _parse_inline_count(parameter.value)
            case Directive.SELECT:
                values["select"] = parse_member_paths(parameter.value)

    combined: Node | None = None
    if len(filters) == 1:
        combined = filters[0]
    elif filters:
        combined = Logical(LogicalOp.AND, tuple(filters))
    return QueryOptions(filter=combined, **values)  # type: ignore[arg-type]
