"""In-process context handler backed by plain dictionaries.

Change-sets are applied to a staged copy of the store and swapped in only when
every bag succeeded, so a failing batch leaves the store untouched.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from beetle.domain.concurrency import check_concurrency, is_noop, writable_properties
from beetle.domain.errors import BeetleError, ConcurrencyConflict, PersistenceFailure
from beetle.domain.metadata import GenerationPattern, read_property, write_property
from beetle.domain.model import EntityBag, EntityState, SaveResult
from beetle.domain.ports import ContextHandler
from beetle.domain.query.queryable import EnumerableQueryable
from beetle.domain.temporary_keys import TemporaryKeys, identity_key

if TYPE_CHECKING:
    from beetle.domain.metadata import DataProperty, EntityType, Metadata
    from beetle.domain.model import SaveContext

log = logging.getLogger(__name__)

type Table = dict[tuple[object, ...], Any]


@contextmanager
def _persistence_errors(bag: EntityBag) -> Iterator[None]:
    try:
        yield
    except BeetleError:
        raise
    except (AttributeError, TypeError, ValueError) as exc:
        raise PersistenceFailure(
            f"Could not save {bag.type_name}: {exc}", index=bag.index
        ) from exc


@dataclass(slots=True)
class InMemoryStore:
    """Rows per entity type keyed by their key tuple, plus identity sequences."""

    tables: dict[str, Table] = field(default_factory=dict[str, Table])
    sequences: dict[str, int] = field(default_factory=dict[str, int])

    def table(self, type_name: str) -> Table:
        return self.tables.setdefault(type_name, {})

    def stage(self) -> InMemoryStore:
        return InMemoryStore(
            tables={name: dict(rows) for name, rows in self.tables.items()},
            sequences=dict(self.sequences),
        )

    def commit(self, staged: InMemoryStore) -> None:
        self.tables = staged.tables
        self.sequences = staged.sequences


class _TableView(Iterable[Any]):
    """Re-iterable view reading the committed rows at iteration time."""

    def __init__(self, store: InMemoryStore, type_name: str) -> None:
        self._store = store
        self._type_name = type_name

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._store.tables.get(self._type_name, {}).values()))


class InMemoryContextHandler(ContextHandler[InMemoryStore]):
    def __init__(
        self, metadata: Metadata, store: InMemoryStore | None = None, **kwargs: Any
    ) -> None:
        super().__init__(store, **kwargs)
        self._metadata = metadata

    def create_context(self) -> InMemoryStore:
        return InMemoryStore()

    def metadata(self) -> Metadata:
        return self._metadata

    def query(self, type_name: str) -> EnumerableQueryable[Any]:
        self._metadata.require(type_name)
        return EnumerableQueryable(_TableView(self.context, type_name))

    def seed(self, type_name: str, *entities: Any) -> None:
        """Insert rows directly, bypassing hooks and concurrency checks."""

        entity_type = self._metadata.require(type_name)
        store = self.context
        for entity in entities:
            self._assign_identities(store, entity_type, entity, only_missing=True)
            store.table(type_name)[entity_type.key_of(entity)] = copy.copy(entity)

    def save_changes(self, save_context: SaveContext) -> SaveResult:
        staged = self.context.stage()
        temporary_keys = TemporaryKeys()
        # identities first, so children may precede their parents in the batch
        for bag in save_context:
            if bag.entity_state is EntityState.ADDED:
                with _persistence_errors(bag):
                    self._prepare_added(staged, bag, temporary_keys)

        saved: list[EntityBag] = []
        for bag in save_context:
            with _persistence_errors(bag):
                if self._apply(staged, bag, temporary_keys):
                    saved.append(bag)
        self.context.commit(staged)

        generated = self.get_generated_values(saved)
        return SaveResult(
            affected_count=len(saved),
            generated_values=tuple(generated),
            user_data=save_context.user_data or None,
        )

    def _prepare_added(
        self, store: InMemoryStore, bag: EntityBag, temporary_keys: TemporaryKeys
    ) -> None:
        entity_type = bag.entity_type or self._metadata.require(bag.type_name)
        key = identity_key(entity_type)
        temporary = read_property(bag.entity, key.name) if key is not None else None
        self._assign_identities(store, entity_type, bag.entity)
        if key is not None:
            temporary_keys.record(entity_type.name, temporary, read_property(bag.entity, key.name))
        # computed values belong to the store, which has nothing to compute them from
        for prop in entity_type.data_properties:
            if prop.generation_pattern is GenerationPattern.COMPUTED:
                write_property(bag.entity, prop.name, None)

    def _apply(self, store: InMemoryStore, bag: EntityBag, temporary_keys: TemporaryKeys) -> bool:
        entity_type = bag.entity_type or self._metadata.require(bag.type_name)
        table = store.table(entity_type.name)
        if bag.entity_state is not EntityState.DELETED:
            for link in temporary_keys.links(entity_type, bag.entity):
                write_property(bag.entity, link.foreign_key, link.target)
        match bag.entity_state:
            case EntityState.UNCHANGED:
                return False
            case EntityState.ADDED:
                key = entity_type.key_of(bag.entity)
                if key in table:
                    raise PersistenceFailure(
                        f"Duplicate key {key} for {entity_type.name}", index=bag.index
                    )
                table[key] = copy.copy(bag.entity)
                return True
            case EntityState.MODIFIED:
                key, current = self._current(table, entity_type, bag)
                check_concurrency(bag, current)
                if is_noop(bag, current, entity_type):
                    log.debug("Skipping unchanged %s #%s", entity_type.name, bag.index)
                    return False
                updated = copy.copy(current)
                for prop in writable_properties(entity_type):
                    write_property(updated, prop.name, read_property(bag.entity, prop.name))
                table[key] = updated
                bag.entity = copy.copy(updated)
                return True
            case EntityState.DELETED:
                key, current = self._current(table, entity_type, bag)
                check_concurrency(bag, current)
                del table[key]
                return True

    def _current(
        self, table: Table, entity_type: EntityType, bag: EntityBag
    ) -> tuple[tuple[object, ...], Any]:
        key = entity_type.key_of(bag.entity)
        current = table.get(key)
        if current is None:
            raise ConcurrencyConflict(
                f"{entity_type.name} {key} no longer exists", index=bag.index
            )
        return key, current

    def _assign_identities(
        self,
        store: InMemoryStore,
        entity_type: EntityType,
        entity: Any,
        *,
        only_missing: bool = False,
    ) -> None:
        for prop in entity_type.data_properties:
            if prop.generation_pattern is not GenerationPattern.IDENTITY:
                continue
            if only_missing and read_property(entity, prop.name) is not None:
                self._advance_sequence(store, entity_type, prop, read_property(entity, prop.name))
                continue
            write_property(entity, prop.name, self._next_identity(store, entity_type, prop))

    def _next_identity(
        self, store: InMemoryStore, entity_type: EntityType, prop: DataProperty
    ) -> Any:
        if prop.data_type is uuid.UUID:
            return uuid.uuid4()
        name = f"{entity_type.name}.{prop.name}"
        store.sequences[name] = store.sequences.get(name, 0) + 1
        return store.sequences[name]

    def _advance_sequence(
        self, store: InMemoryStore, entity_type: EntityType, prop: DataProperty, value: Any
    ) -> None:
        if isinstance(value, int):
            name = f"{entity_type.name}.{prop.name}"
            store.sequences[name] = max(store.sequences.get(name, 0), value)
