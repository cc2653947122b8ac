"""Queryable pushing composed query operations down to SQL."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import func, select
from sqlalchemy.orm import aliased, selectinload

from beetle.adapters.sqlalchemy.expressions import compile_filter, member_column, relationship_of
from beetle.domain.errors import InvalidQuery
from beetle.domain.query.queryable import Queryable

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import Select
    from sqlalchemy.orm import Session

    from beetle.domain.query.expressions import Node, SortKey


@dataclass(frozen=True, slots=True)
class _QueryState:
    statement: Select[Any]
    entity: Any  # the mapped class, or the alias rows are selected through
    offset: int = 0
    limit: int | None = None
    includes: tuple[tuple[str, ...], ...] = ()
    projected: bool = False

    @property
    def paged(self) -> bool:
        return self.offset > 0 or self.limit is not None


class SqlAlchemyQueryable[T](Queryable[T]):
    """Builds one ``SELECT`` statement; the session runs it on iteration or count.

    Filtering or ordering a paged statement wraps it in a subquery first, so the
    operations keep the order in which they were composed.
    """

    def __init__(
        self,
        session: Session,
        model: type[Any],
        statement: Select[Any] | None = None,
        *,
        state: _QueryState | None = None,
    ) -> None:
        self.session = session
        self.model = model
        self._state = state or _QueryState(
            statement if statement is not None else select(model), model
        )

    @property
    def statement(self) -> Select[Any]:
        return self._state.statement

    def _derive(self, state: _QueryState) -> SqlAlchemyQueryable[Any]:
        return SqlAlchemyQueryable(self.session, self.model, state=state)

    def _wrapped(self, state: _QueryState) -> _QueryState:
        subquery = state.statement.subquery()
        if state.projected:
            return replace(state, statement=select(*subquery.c), entity=None, offset=0, limit=None)
        alias = aliased(self.model, subquery)
        return replace(state, statement=select(alias), entity=alias, offset=0, limit=None)

    def _composable(self) -> _QueryState:
        state = self._state
        if state.projected:
            raise InvalidQuery("A projected query can only be paged")
        return self._wrapped(state) if state.paged else state

    def where(self, predicate: Node) -> Queryable[T]:
        state = self._composable()
        clause = compile_filter(predicate, state.entity)
        return self._derive(replace(state, statement=state.statement.where(clause)))

    def order_by(self, keys: Sequence[SortKey]) -> Queryable[T]:
        state = self._composable()
        statement = state.statement.order_by(None)
        clauses: list[Any] = []
        for key in keys:
            statement, column = member_column(statement, state.entity, key.path)
            # nulls sort lowest, as they do in memory
            clauses.append(
                column.desc().nulls_last() if key.descending else column.asc().nulls_first()
            )
        return self._derive(replace(state, statement=statement.order_by(*clauses)))

    def skip(self, count: int) -> Queryable[T]:
        state = self._state
        if state.limit is not None:
            state = self._wrapped(state)
        offset = state.offset + count
        statement = state.statement.offset(offset)
        return self._derive(replace(state, statement=statement, offset=offset))

    def take(self, count: int) -> Queryable[T]:
        state = self._state
        limit = count if state.limit is None else min(state.limit, count)
        return self._derive(replace(state, statement=state.statement.limit(limit), limit=limit))

    def include(self, paths: Sequence[tuple[str, ...]]) -> Queryable[T]:
        for path in paths:
            self._loader(self.model, path)
        return self._derive(replace(self._state, includes=(*self._state.includes, *paths)))

    def select(self, paths: Sequence[tuple[str, ...]]) -> Queryable[dict[str, Any]]:
        state = self._state
        if state.projected:
            raise InvalidQuery("A query can only be projected once")
        statement = state.statement
        columns: list[Any] = []
        for path in paths:
            statement, column = member_column(statement, state.entity, path)
            columns.append(column.label(".".join(path)))
        statement = statement.with_only_columns(*columns, maintain_column_froms=True)
        return self._derive(replace(state, statement=statement, projected=True))

    def count(self) -> int:
        counted = select(func.count()).select_from(self.statement.order_by(None).subquery())
        return int(self.session.scalar(counted) or 0)

    def __iter__(self) -> Iterator[T]:
        state = self._state
        if state.projected:
            rows = [dict(row._mapping) for row in self.session.execute(state.statement)]
            return iter(cast("list[T]", rows))
        statement = state.statement
        if state.includes:
            statement = statement.options(
                *(self._loader(state.entity, path) for path in state.includes)
            )
        return iter(cast("list[T]", list(self.session.scalars(statement))))

    def _loader(self, entity: Any, path: tuple[str, ...]) -> Any:
        attr, target = relationship_of(entity, path[0])
        loader = selectinload(attr)
        for name in path[1:]:
            attr, target = relationship_of(target, name)
            loader = loader.selectinload(attr)
        return loader
