"""Temporary client keys of added entities and the foreign keys that point at them.

Clients give new entities placeholder keys (usually negative numbers) and use the
same placeholders in foreign keys of related entities of the same batch. Adapters
record each placeholder against whatever stands for the real row (the assigned key,
or the pending ORM instance) and resolve dependent foreign keys from it.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from beetle.domain.metadata import GenerationPattern, read_property

if TYPE_CHECKING:
    from collections.abc import Iterator

    from beetle.domain.metadata import DataProperty, EntityType, NavigationProperty

log = logging.getLogger(__name__)


def identity_key(entity_type: EntityType) -> DataProperty | None:
    """Return the key property when the type has a single, backend-assigned key."""

    keys = entity_type.keys
    if len(keys) == 1 and keys[0].generation_pattern is GenerationPattern.IDENTITY:
        return keys[0]
    return None


@dataclass(frozen=True, slots=True)
class ForeignKeyLink:
    navigation: NavigationProperty
    foreign_key: str
    target: Any


@dataclass(slots=True)
class TemporaryKeys:
    """Placeholder key -> replacement, per entity type name."""

    _keys: dict[str, dict[Hashable, Any]] = field(default_factory=dict[str, dict[Hashable, Any]])

    def record(self, type_name: str, temporary: object, replacement: object) -> None:
        if temporary is None or not isinstance(temporary, Hashable):
            return
        self._keys.setdefault(type_name, {})[temporary] = replacement

    def links(self, entity_type: EntityType, entity: object) -> Iterator[ForeignKeyLink]:
        """Yield every single-column foreign key of ``entity`` holding a recorded placeholder."""

        for navigation in entity_type.navigation_properties:
            if len(navigation.foreign_keys) != 1:
                continue
            replacements = self._keys.get(navigation.target_type)
            if not replacements:
                continue
            foreign_key = navigation.foreign_keys[0]
            value = read_property(entity, foreign_key)
            if isinstance(value, Hashable) and value in replacements:
                log.debug(
                    "Resolving %s.%s=%r through %s",
                    entity_type.name,
                    foreign_key,
                    value,
                    navigation.name,
                )
                yield ForeignKeyLink(navigation, foreign_key, replacements[value])
