"""Resolve a raw save bundle into ordered entity bags."""

from __future__ import annotations

import logging
from functools import cache
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from beetle.domain.errors import InvalidSaveBundle
from beetle.domain.metadata import write_property
from beetle.domain.model import EntityBag
from beetle.domain.schema import parse_save_bundle

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from beetle.domain.metadata import EntityType, Metadata
    from beetle.domain.schema import EntityChangePayload

log = logging.getLogger(__name__)


@cache
def _adapter_for(data_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(data_type)


def coerce_values(
    entity_type: EntityType, values: Mapping[str, Any], *, index: int | None = None
) -> dict[str, Any]:
    """Convert wire values to the declared property types; unknown names are dropped."""

    coerced: dict[str, Any] = {}
    for name, value in values.items():
        prop = entity_type.data_property(name)
        if prop is None:
            if entity_type.navigation_property(name) is None:
                log.debug("Ignoring unknown property %s.%s", entity_type.name, name)
            continue
        if value is None or prop.data_type is object:
            coerced[name] = value
            continue
        try:
            coerced[name] = _adapter_for(prop.data_type).validate_python(value)
        except ValidationError as exc:
            raise InvalidSaveBundle(
                f"Invalid value for {entity_type.name}.{name}: {value!r}", index=index
            ) from exc
    return coerced


def populate(instance: Any, values: Mapping[str, Any]) -> Any:
    for name, value in values.items():
        write_property(instance, name, value)
    return instance


def _resolve_change(
    change: EntityChangePayload,
    index: int,
    *,
    metadata: Metadata,
    create_instance: Callable[[str], Any],
    force_update: bool,
) -> EntityBag:
    entity_type = metadata.find(change.type_name)
    if entity_type is None:
        # unknown shapes stay plain mappings until something maps them
        return EntityBag(
            client_entity=dict(change.values),
            entity=dict(change.values),
            entity_state=change.state,
            index=index,
            type_name=change.type_name,
            original_values=dict(change.original_values) if change.original_values else None,
            force_update=change.force_update or force_update,
        )

    values = coerce_values(entity_type, change.values, index=index)
    original_values = (
        coerce_values(entity_type, change.original_values, index=index)
        if change.original_values is not None
        else None
    )
    return EntityBag(
        client_entity=populate(create_instance(entity_type.name), values),
        entity=populate(create_instance(entity_type.name), values),
        entity_state=change.state,
        index=index,
        type_name=entity_type.name,
        original_values=original_values,
        force_update=change.force_update or force_update,
        entity_type=entity_type,
    )


def resolve_entities(
    raw_bundle: object,
    *,
    metadata: Metadata,
    create_instance: Callable[[str], Any],
) -> tuple[list[EntityBag], list[EntityBag]]:
    """Return ``(known, unknown)`` bags; both keep the submitted batch positions as index."""

    bundle = parse_save_bundle(raw_bundle)
    known: list[EntityBag] = []
    unknown: list[EntityBag] = []
    for index, change in enumerate(bundle.entities):
        bag = _resolve_change(
            change,
            index,
            metadata=metadata,
            create_instance=create_instance,
            force_update=bundle.force_update,
        )
        (known if bag.is_known else unknown).append(bag)

    log.debug("Resolved save bundle: known=%s, unknown=%s", len(known), len(unknown))
    return known, unknown
