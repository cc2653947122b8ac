"""Context handler applying change-sets through a SQLAlchemy session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import del_attribute

from beetle.adapters.sqlalchemy.metadata import build_metadata
from beetle.adapters.sqlalchemy.queryable import SqlAlchemyQueryable
from beetle.domain.concurrency import check_concurrency, is_noop, writable_properties
from beetle.domain.errors import ConcurrencyConflict, NotSupported, PersistenceFailure
from beetle.domain.metadata import read_property, write_property
from beetle.domain.model import EntityState, SaveResult
from beetle.domain.ports import ContextHandler
from beetle.domain.temporary_keys import TemporaryKeys, identity_key

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from beetle.domain.metadata import EntityType, Metadata
    from beetle.domain.model import EntityBag, SaveContext
    from beetle.domain.query.queryable import Queryable

log = logging.getLogger(__name__)


class SqlAlchemyContextHandler(ContextHandler[Session]):
    """Proxy to one SQLAlchemy session over a fixed set of mapped classes.

    The session is either injected or created on first use from ``session_factory``.
    A save flushes every bag and commits once; any failure rolls the session back.
    """

    def __init__(
        self,
        mapped_classes: Iterable[type],
        session: Session | None = None,
        *,
        session_factory: Callable[[], Session] | None = None,
        name: str = "default",
        **kwargs: Any,
    ) -> None:
        super().__init__(session, **kwargs)
        self._classes = {cls.__name__: cls for cls in mapped_classes}
        self._session_factory = session_factory
        self._name = name
        self._metadata: Metadata | None = None

    def create_context(self) -> Session:
        if self._session_factory is None:
            return super().create_context()
        return self._session_factory()

    @property
    def session(self) -> Session:
        return self.context

    def metadata(self) -> Metadata:
        if self._metadata is None:
            self._metadata = build_metadata(self._name, self._classes.values())
        return self._metadata

    def mapped_class(self, type_name: str) -> type:
        self.metadata().require(type_name)
        return self._classes[type_name]

    # queries ----------------------------------------------------------------

    def query(self, type_or_name: type | str) -> SqlAlchemyQueryable[Any]:
        model = (
            self.mapped_class(type_or_name) if isinstance(type_or_name, str) else type_or_name
        )
        return SqlAlchemyQueryable(self.session, model)

    def as_queryable(self, value: Any) -> Queryable[Any] | None:
        if isinstance(value, Select):
            descriptions = value.column_descriptions
            model = descriptions[0].get("entity") if len(descriptions) == 1 else None
            if model is None:
                raise NotSupported("Only single-entity statements can be queried")
            return SqlAlchemyQueryable(self.session, model, value)
        return super().as_queryable(value)

    # saving -----------------------------------------------------------------

    def save_changes(self, save_context: SaveContext) -> SaveResult:
        session = self.session
        saved: list[EntityBag] = []
        temporary_keys = TemporaryKeys()
        try:
            for bag in save_context:
                if bag.entity_state is EntityState.ADDED:
                    self._prepare_added(bag, temporary_keys)
            for bag in save_context:
                if self._apply(session, bag):
                    saved.append(bag)
                    if bag.entity_state is not EntityState.DELETED:
                        self._link_parents(bag, temporary_keys)
            session.flush()
            generated = self.get_generated_values(saved)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceFailure(f"Saving changes failed: {exc}") from exc
        except BaseException:
            session.rollback()
            raise

        return SaveResult(
            affected_count=len(saved),
            generated_values=tuple(generated),
            user_data=save_context.user_data or None,
        )

    def _prepare_added(self, bag: EntityBag, temporary_keys: TemporaryKeys) -> None:
        entity_type = bag.entity_type or self.metadata().require(bag.type_name)
        key = identity_key(entity_type)
        if key is not None:
            temporary_keys.record(
                entity_type.name, read_property(bag.entity, key.name), bag.entity
            )
        # client placeholders must not reach the INSERT; the database assigns these
        state = sa_inspect(bag.entity)
        for prop in entity_type.generated_properties:
            if prop.name in state.dict:
                del_attribute(bag.entity, prop.name)

    def _link_parents(self, bag: EntityBag, temporary_keys: TemporaryKeys) -> None:
        # the flush copies the parent's new key into the foreign key column
        entity_type = bag.entity_type or self.metadata().require(bag.type_name)
        for link in temporary_keys.links(entity_type, bag.entity):
            write_property(bag.entity, link.navigation.name, link.target)

    def _apply(self, session: Session, bag: EntityBag) -> bool:
        entity_type = bag.entity_type or self.metadata().require(bag.type_name)
        match bag.entity_state:
            case EntityState.UNCHANGED:
                return False
            case EntityState.ADDED:
                session.add(bag.entity)
                return True
            case EntityState.MODIFIED:
                current = self._current(session, entity_type, bag)
                check_concurrency(bag, current)
                if is_noop(bag, current, entity_type):
                    log.debug("Skipping unchanged %s #%s", entity_type.name, bag.index)
                    return False
                for prop in writable_properties(entity_type):
                    write_property(current, prop.name, read_property(bag.entity, prop.name))
                bag.entity = current
                return True
            case EntityState.DELETED:
                current = self._current(session, entity_type, bag)
                check_concurrency(bag, current)
                session.delete(current)
                bag.entity = current
                return True

    def _current(self, session: Session, entity_type: EntityType, bag: EntityBag) -> Any:
        key = entity_type.key_of(bag.entity)
        current = session.get(self.mapped_class(entity_type.name), key)
        if current is None:
            raise ConcurrencyConflict(
                f"{entity_type.name} {key} no longer exists", index=bag.index
            )
        return current
