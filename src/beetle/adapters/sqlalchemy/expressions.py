"""Compile filter and ordering expressions to SQLAlchemy clauses."""

from __future__ import annotations

import operator
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import and_, false, func, literal, not_, or_, true
from sqlalchemy.orm import RelationshipProperty, aliased

from beetle.domain.errors import InvalidQuery
from beetle.domain.query.expressions import (
    Call,
    Compare,
    CompareOp,
    Literal,
    Logical,
    LogicalOp,
    Member,
    Method,
    Not,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.orm import InstrumentedAttribute

    from beetle.domain.query.expressions import Node

_OPERATORS: Final[dict[CompareOp, Callable[[Any, Any], Any]]] = {
    CompareOp.EQ: operator.eq,
    CompareOp.NE: operator.ne,
    CompareOp.LT: operator.lt,
    CompareOp.LE: operator.le,
    CompareOp.GT: operator.gt,
    CompareOp.GE: operator.ge,
}


def attribute(entity: Any, name: str) -> InstrumentedAttribute[Any]:
    attr = getattr(entity, name, None)
    if attr is None or not hasattr(attr, "property"):
        raise InvalidQuery(f"Unknown member {name!r} on {_entity_name(entity)}")
    return cast("InstrumentedAttribute[Any]", attr)


def relationship_of(entity: Any, name: str) -> tuple[InstrumentedAttribute[Any], type]:
    attr = attribute(entity, name)
    prop = attr.property
    if not isinstance(prop, RelationshipProperty):
        raise InvalidQuery(f"{name!r} on {_entity_name(entity)} is not a navigation property")
    return attr, prop.mapper.class_


def column_of(entity: Any, name: str) -> InstrumentedAttribute[Any]:
    attr = attribute(entity, name)
    if isinstance(attr.property, RelationshipProperty):
        raise InvalidQuery(f"{name!r} on {_entity_name(entity)} is not a data property")
    return attr


def compile_filter(node: Node, entity: Any) -> ColumnElement[bool]:
    """Translate a filter AST into a boolean clause over ``entity`` (a class or alias).

    Members of related entities are expressed as EXISTS subqueries through
    ``has`` (scalar navigation) or ``any`` (collection navigation).
    """

    match node:
        case Logical(op=LogicalOp.AND, operands=operands):
            return and_(*(compile_filter(operand, entity) for operand in operands))
        case Logical(operands=operands):
            return or_(*(compile_filter(operand, entity) for operand in operands))
        case Not(operand=operand):
            return not_(compile_filter(operand, entity))
        case Literal(value=value):
            return true() if value else false()
        case _:
            prefix = _related_prefix(node)
            if prefix:
                return _through(entity, prefix, node)
            return _predicate(node, entity)


def _through(entity: Any, prefix: tuple[str, ...], node: Node) -> ColumnElement[bool]:
    attr, target = relationship_of(entity, prefix[0])
    inner_node = _strip(node, 1)
    rest = prefix[1:]
    inner = _through(target, rest, inner_node) if rest else _predicate(inner_node, target)
    prop = cast("RelationshipProperty[Any]", attr.property)
    return attr.any(inner) if prop.uselist else attr.has(inner)


def _predicate(node: Node, entity: Any) -> ColumnElement[bool]:
    match node:
        case Compare(op=op, left=left, right=right):
            return _compare(op, left, right, entity)
        case Call(method=Method.CONTAINS | Method.STARTS_WITH | Method.ENDS_WITH):
            return cast("ColumnElement[bool]", _value(node, entity))
        case Member() | Call():
            return cast("ColumnElement[bool]", _value(node, entity)) == true()
        case _:
            return compile_filter(node, entity)


def _compare(op: CompareOp, left: Node, right: Node, entity: Any) -> ColumnElement[bool]:
    if isinstance(left, Literal) and left.value is None:
        left, right = right, left
    if isinstance(right, Literal) and right.value is None:
        value = _value(left, entity)
        if op is CompareOp.EQ:
            return value.is_(None)
        if op is CompareOp.NE:
            return value.is_not(None)
        return false()
    if isinstance(left, Literal) and isinstance(right, Literal):
        return _constant(op, left.value, right.value)
    return _OPERATORS[op](_operand(left, entity), _operand(right, entity))


def _constant(op: CompareOp, left: Any, right: Any) -> ColumnElement[bool]:
    try:
        return true() if _OPERATORS[op](left, right) else false()
    except TypeError as exc:
        raise InvalidQuery(
            f"Cannot compare {type(left).__name__} with {type(right).__name__}"
        ) from exc


def _operand(node: Node, entity: Any) -> Any:
    # plain values let the column type process the bind parameter
    return node.value if isinstance(node, Literal) else _value(node, entity)


def _value(node: Node, entity: Any) -> ColumnElement[Any]:
    match node:
        case Literal(value=value):
            return literal(value)
        case Member(path=(name,)):
            return cast("ColumnElement[Any]", column_of(entity, name))
        case Member(path=path):
            raise InvalidQuery(f"Unsupported member path {'.'.join(path)!r}")
        case Call(method=method, target=target, args=args):
            column = _value(target, entity)
            match method:
                case Method.TO_LOWER:
                    return func.lower(column)
                case Method.TO_UPPER:
                    return func.upper(column)
                case Method.CONTAINS:
                    pattern = _pattern(args[0], entity)
                    return column.contains(pattern, autoescape=isinstance(pattern, str))
                case Method.STARTS_WITH:
                    pattern = _pattern(args[0], entity)
                    return column.startswith(pattern, autoescape=isinstance(pattern, str))
                case Method.ENDS_WITH:
                    pattern = _pattern(args[0], entity)
                    return column.endswith(pattern, autoescape=isinstance(pattern, str))
        case _:
            raise InvalidQuery(f"Expression cannot be used as a value: {node!r}")


def _pattern(node: Node, entity: Any) -> Any:
    if isinstance(node, Literal):
        return str(node.value)
    return _value(node, entity)


def _members(node: Node) -> Iterator[Member]:
    match node:
        case Member():
            yield node
        case Call(target=target, args=args):
            yield from _members(target)
            for arg in args:
                yield from _members(arg)
        case Compare(left=left, right=right):
            yield from _members(left)
            yield from _members(right)
        case _:
            return


def _related_prefix(node: Node) -> tuple[str, ...]:
    prefixes = {member.path[:-1] for member in _members(node)}
    if len(prefixes) > 1:
        raise InvalidQuery("Members of different related entities cannot be combined")
    return prefixes.pop() if prefixes else ()


def _strip(node: Node, depth: int) -> Node:
    match node:
        case Member(path=path):
            return Member(path[depth:])
        case Call(target=target, args=args):
            return replace(
                node, target=_strip(target, depth), args=tuple(_strip(a, depth) for a in args)
            )
        case Compare(left=left, right=right):
            return replace(node, left=_strip(left, depth), right=_strip(right, depth))
        case _:
            return node


def member_column(
    statement: Select[Any], entity: Any, path: tuple[str, ...]
) -> tuple[Select[Any], ColumnElement[Any]]:
    """Resolve ``path`` to a column, outer-joining scalar navigation properties on the way."""

    current = entity
    for name in path[:-1]:
        attr, target = relationship_of(current, name)
        if cast("RelationshipProperty[Any]", attr.property).uselist:
            raise InvalidQuery(f"Cannot order or project through collection {name!r}")
        joined = aliased(target)
        statement = statement.outerjoin(joined, attr.of_type(joined))
        current = joined
    return statement, cast("ColumnElement[Any]", column_of(current, path[-1]))


def _entity_name(entity: Any) -> str:
    return getattr(entity, "__name__", None) or type(entity).__name__
