"""Optimistic concurrency and no-op rules shared by the backend adapters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from beetle.domain.errors import ConcurrencyConflict
from beetle.domain.metadata import GenerationPattern, read_property

if TYPE_CHECKING:
    from beetle.domain.metadata import DataProperty, EntityType
    from beetle.domain.model import EntityBag

log = logging.getLogger(__name__)


def find_conflicts(bag: EntityBag, current: object) -> dict[str, tuple[Any, Any]]:
    """Return ``{property: (original, persisted)}`` for every stale original value."""

    conflicts: dict[str, tuple[Any, Any]] = {}
    for name, original in (bag.original_values or {}).items():
        persisted = read_property(current, name)
        if persisted != original:
            conflicts[name] = (original, persisted)
    return conflicts


def check_concurrency(bag: EntityBag, current: object) -> None:
    """Raise ``ConcurrencyConflict`` on stale original values unless the bag forces the update."""

    conflicts = find_conflicts(bag, current)
    if not conflicts:
        return
    names = ", ".join(sorted(conflicts))
    if bag.force_update:
        log.warning(
            "Forcing update of %s #%s over changed values: %s", bag.type_name, bag.index, names
        )
        return
    raise ConcurrencyConflict(
        f"{bag.type_name} was changed since it was read ({names})", index=bag.index
    )


def writable_properties(entity_type: EntityType) -> tuple[DataProperty, ...]:
    """Data properties a client may write (backend-computed ones excluded)."""

    return tuple(
        prop
        for prop in entity_type.data_properties
        if prop.generation_pattern is not GenerationPattern.COMPUTED
    )


def has_changes(bag: EntityBag, current: object, entity_type: EntityType) -> bool:
    return any(
        read_property(bag.entity, prop.name) != read_property(current, prop.name)
        for prop in writable_properties(entity_type)
    )


def is_noop(bag: EntityBag, current: object, entity_type: EntityType) -> bool:
    """A modified bag that changes nothing is skipped, unless it forces the update."""

    return not bag.force_update and not has_changes(bag, current, entity_type)
