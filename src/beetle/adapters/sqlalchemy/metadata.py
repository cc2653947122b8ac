"""Derive Beetle metadata from SQLAlchemy mappers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import Column, Table
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import MANYTOONE

from beetle.domain.metadata import (
    DataProperty,
    EntityType,
    GenerationPattern,
    Metadata,
    NavigationProperty,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.orm import ColumnProperty, Mapper, RelationshipProperty

log = logging.getLogger(__name__)


def build_metadata(name: str, mapped_classes: Iterable[type]) -> Metadata:
    return Metadata(name, tuple(entity_type_for(cls) for cls in mapped_classes))


def entity_type_for(cls: type) -> EntityType:
    mapper: Mapper[Any] = sa_inspect(cls)
    data_properties = tuple(_data_property(attr) for attr in mapper.column_attrs)
    navigation_properties = tuple(
        _navigation_property(mapper, relationship) for relationship in mapper.relationships
    )
    log.debug(
        "Mapped %s: %s data properties, %s navigation properties",
        cls.__name__,
        len(data_properties),
        len(navigation_properties),
    )
    return EntityType(
        name=cls.__name__,
        data_properties=data_properties,
        navigation_properties=navigation_properties,
        factory=cls,
    )


def _data_property(attr: ColumnProperty[Any]) -> DataProperty:
    column = attr.columns[0]
    if not isinstance(column, Column):
        # SQL expression backed attributes are read-only
        return DataProperty(name=attr.key, generation_pattern=GenerationPattern.COMPUTED)
    return DataProperty(
        name=attr.key,
        data_type=_python_type(column),
        nullable=bool(column.nullable),
        is_key=bool(column.primary_key),
        generation_pattern=generation_pattern(column),
    )


def _python_type(column: Column[Any]) -> type:
    try:
        return column.type.python_type
    except NotImplementedError:
        return object


def generation_pattern(column: Column[Any]) -> GenerationPattern:
    if column.computed is not None or column.server_onupdate is not None:
        return GenerationPattern.COMPUTED
    if column.identity is not None:
        return GenerationPattern.IDENTITY
    table = column.table
    if isinstance(table, Table) and table.autoincrement_column is column:
        return GenerationPattern.IDENTITY
    return GenerationPattern.NONE


def _navigation_property(
    mapper: Mapper[Any], relationship: RelationshipProperty[Any]
) -> NavigationProperty:
    foreign_keys: tuple[str, ...] = ()
    if relationship.direction is MANYTOONE:
        foreign_keys = tuple(
            mapper.get_property_by_column(column).key for column in relationship.local_columns
        )
    return NavigationProperty(
        name=relationship.key,
        target_type=relationship.mapper.class_.__name__,
        is_scalar=not relationship.uselist,
        foreign_keys=foreign_keys,
    )
