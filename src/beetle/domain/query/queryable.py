"""Backend-independent traversal contract used by the query processor."""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping
from functools import partial
from typing import TYPE_CHECKING, Any, cast

from beetle.domain.query.expressions import compile_predicate, resolve_path, sort_value

if TYPE_CHECKING:
    from collections.abc import Sequence

    from beetle.domain.query.expressions import Node, SortKey

type _Step = Callable[[Iterable[Any]], Iterable[Any]]


class Queryable[T](ABC):
    """A lazily composed query. Every operation returns a new queryable.

    Nothing touches the underlying store until the queryable is iterated or counted,
    so backends are free to push the composed operations down to storage.
    """

    @abstractmethod
    def where(self, predicate: Node) -> Queryable[T]: ...

    @abstractmethod
    def order_by(self, keys: Sequence[SortKey]) -> Queryable[T]: ...

    @abstractmethod
    def skip(self, count: int) -> Queryable[T]: ...

    @abstractmethod
    def take(self, count: int) -> Queryable[T]: ...

    @abstractmethod
    def include(self, paths: Sequence[tuple[str, ...]]) -> Queryable[T]:
        """Load the related data reachable through ``paths`` alongside each record."""
        ...

    @abstractmethod
    def select(self, paths: Sequence[tuple[str, ...]]) -> Queryable[dict[str, Any]]:
        """Project each record onto a mapping keyed by the dotted member paths."""
        ...

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def __iter__(self) -> Iterator[T]: ...

    def to_list(self) -> list[T]:
        return list(self)


class EnumerableQueryable[T](Queryable[T]):
    """Queryable over any re-iterable Python collection.

    One-shot iterators are buffered on construction since counting and iterating
    both need a pass over the source.
    """

    def __init__(self, source: Iterable[T], steps: tuple[_Step, ...] = ()) -> None:
        self._source: Iterable[T] = list(source) if isinstance(source, Iterator) else source
        self._steps = steps
        self.included: tuple[tuple[str, ...], ...] = ()

    def _with(self, step: _Step) -> EnumerableQueryable[Any]:
        derived = EnumerableQueryable[Any](self._source, (*self._steps, step))
        derived.included = self.included
        return derived

    def where(self, predicate: Node) -> Queryable[T]:
        test = compile_predicate(predicate)
        return self._with(lambda items: filter(test, items))

    def order_by(self, keys: Sequence[SortKey]) -> Queryable[T]:
        ordered_keys = tuple(keys)

        def step(items: Iterable[Any]) -> Iterable[Any]:
            result = list(items)
            # stable sorts, least significant key first
            for key in reversed(ordered_keys):
                result.sort(key=partial(sort_value, path=key.path), reverse=key.descending)
            return result

        return self._with(step)

    def skip(self, count: int) -> Queryable[T]:
        return self._with(lambda items: itertools.islice(items, count, None))

    def take(self, count: int) -> Queryable[T]:
        return self._with(lambda items: itertools.islice(items, count))

    def include(self, paths: Sequence[tuple[str, ...]]) -> Queryable[T]:
        # in-memory records already hold their related objects
        derived = self._with(lambda items: items)
        derived.included = (*self.included, *paths)
        return derived

    def select(self, paths: Sequence[tuple[str, ...]]) -> Queryable[dict[str, Any]]:
        projected = tuple(paths)

        def step(items: Iterable[Any]) -> Iterable[dict[str, Any]]:
            for item in items:
                yield {".".join(path): resolve_path(item, path) for path in projected}

        return self._with(step)

    def count(self) -> int:
        return sum(1 for _ in self)

    def __iter__(self) -> Iterator[T]:
        items: Iterable[Any] = self._source
        for step in self._steps:
            items = step(items)
        return iter(items)


def as_queryable(value: Any) -> Queryable[Any] | None:
    """Wrap sequence-like action results; scalars, strings and mappings are not queryable."""

    if isinstance(value, Queryable):
        return cast("Queryable[Any]", value)
    if isinstance(value, str | bytes | bytearray | Mapping):
        return None
    if isinstance(value, Iterable):
        return EnumerableQueryable(cast("Iterable[Any]", value))
    return None
