"""
Static schema description shared by adapters, the save pipeline and the query processor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from beetle.domain.errors import TypeNotFound

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

type EntityFactory = Callable[[], Any]


class GenerationPattern(StrEnum):
    """Who assigns a property value."""

    NONE = "none"
    IDENTITY = "identity"  # assigned by the backend on insert
    COMPUTED = "computed"  # recomputed by the backend on insert and update


@dataclass(frozen=True, slots=True)
class DataProperty:
    name: str
    data_type: type = object
    nullable: bool = True
    is_key: bool = False
    generation_pattern: GenerationPattern = GenerationPattern.NONE

    @property
    def is_generated(self) -> bool:
        return self.generation_pattern is not GenerationPattern.NONE

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "type": self.data_type.__name__,
            "nullable": self.nullable,
            "isKey": self.is_key,
            "generationPattern": self.generation_pattern.value,
        }


@dataclass(frozen=True, slots=True)
class NavigationProperty:
    name: str
    target_type: str
    is_scalar: bool = True
    foreign_keys: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "targetType": self.target_type,
            "isScalar": self.is_scalar,
            "foreignKeys": list(self.foreign_keys),
        }


@dataclass(frozen=True, slots=True)
class EntityType:
    """One persistable type: its data properties, keys and relations."""

    name: str
    data_properties: tuple[DataProperty, ...] = ()
    navigation_properties: tuple[NavigationProperty, ...] = ()
    factory: EntityFactory | None = field(default=None, compare=False, repr=False)

    @property
    def keys(self) -> tuple[DataProperty, ...]:
        return tuple(prop for prop in self.data_properties if prop.is_key)

    @property
    def generated_properties(self) -> tuple[DataProperty, ...]:
        return tuple(prop for prop in self.data_properties if prop.is_generated)

    def data_property(self, name: str) -> DataProperty | None:
        for prop in self.data_properties:
            if prop.name == name:
                return prop
        return None

    def navigation_property(self, name: str) -> NavigationProperty | None:
        for prop in self.navigation_properties:
            if prop.name == name:
                return prop
        return None

    def key_of(self, entity: object) -> tuple[object, ...]:
        return tuple(read_property(entity, prop.name) for prop in self.keys)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "keys": [prop.name for prop in self.keys],
            "dataProperties": [prop.to_dict() for prop in self.data_properties],
            "navigationProperties": [prop.to_dict() for prop in self.navigation_properties],
        }


@dataclass(frozen=True, slots=True)
class Metadata:
    """Immutable, per-adapter description of every persistable type."""

    name: str
    entity_types: tuple[EntityType, ...] = ()

    def find(self, type_name: str) -> EntityType | None:
        for entity_type in self.entity_types:
            if entity_type.name == type_name:
                return entity_type
        return None

    def require(self, type_name: str) -> EntityType:
        entity_type = self.find(type_name)
        if entity_type is None:
            raise TypeNotFound(f"Type could not be found: {type_name}")
        return entity_type

    def find_for_instance(self, entity: object) -> EntityType | None:
        """Match an instance by its class name (mapping entities carry no type)."""

        return self.find(type(entity).__name__)

    @property
    def type_names(self) -> tuple[str, ...]:
        return tuple(entity_type.name for entity_type in self.entity_types)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "entities": [entity_type.to_dict() for entity_type in self.entity_types],
        }


class TypeRegistry:
    """Type name to factory lookup, populated once from metadata."""

    def __init__(self, factories: Mapping[str, EntityFactory] | None = None) -> None:
        self._factories: dict[str, EntityFactory] = dict(factories or {})

    @classmethod
    def from_metadata(cls, metadata: Metadata) -> TypeRegistry:
        return cls(
            {
                entity_type.name: entity_type.factory
                for entity_type in metadata.entity_types
                if entity_type.factory is not None
            }
        )

    def register(self, type_name: str, factory: EntityFactory) -> None:
        self._factories[type_name] = factory

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._factories

    def names(self) -> Iterable[str]:
        return self._factories.keys()

    def create(self, type_name: str) -> Any:
        try:
            factory = self._factories[type_name]
        except KeyError:
            raise TypeNotFound(f"Type could not be found: {type_name}") from None
        return factory()


def read_property(entity: object, name: str) -> Any:
    """Read a property from an attribute-style object or a mapping."""

    if isinstance(entity, dict):
        return entity.get(name)  # pyright: ignore[reportUnknownMemberType]
    return getattr(entity, name, None)


def write_property(entity: object, name: str, value: object) -> None:
    if isinstance(entity, dict):
        entity[name] = value
        return
    setattr(entity, name, value)
