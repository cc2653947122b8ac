"""Derive generated values for backends that do not report them natively."""

from __future__ import annotations

from typing import TYPE_CHECKING

from beetle.domain.metadata import GenerationPattern, read_property
from beetle.domain.model import EntityBag, EntityState, GeneratedValue

if TYPE_CHECKING:
    from collections.abc import Iterable

    from beetle.domain.metadata import Metadata


def get_generated_values(
    entity_bags: Iterable[EntityBag], metadata: Metadata
) -> list[GeneratedValue]:
    """Collect backend-assigned values from the resolved entities of saved bags.

    Identity properties count for added entities only; computed properties count
    for added and modified ones. Deleted and unchanged bags produce nothing.
    """

    generated: list[GeneratedValue] = []
    for bag in entity_bags:
        if bag.entity_state not in (EntityState.ADDED, EntityState.MODIFIED):
            continue
        entity_type = bag.entity_type or metadata.find(bag.type_name)
        if entity_type is None:
            continue
        for prop in entity_type.generated_properties:
            if (
                prop.generation_pattern is GenerationPattern.IDENTITY
                and bag.entity_state is not EntityState.ADDED
            ):
                continue
            generated.append(
                GeneratedValue(
                    index=bag.index,
                    property=prop.name,
                    value=read_property(bag.entity, prop.name),
                )
            )
    return generated
