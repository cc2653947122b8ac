from __future__ import annotations

from typing import TYPE_CHECKING

from beetle.domain.generated_values import get_generated_values
from beetle.domain.model import EntityBag, EntityState, GeneratedValue
from tests.helpers.entities import ORDER_TYPE, TAG_TYPE, Order, Tag, make_metadata

if TYPE_CHECKING:
    from beetle.domain.metadata import EntityType


def _bag(
    index: int, state: EntityState, entity: object, entity_type: EntityType = ORDER_TYPE
) -> EntityBag:
    return EntityBag(
        client_entity=entity,
        entity=entity,
        entity_state=state,
        index=index,
        type_name=entity_type.name,
        entity_type=entity_type,
    )


def test_identity_reported_for_added_and_computed_for_modified() -> None:
    bags = [
        _bag(0, EntityState.ADDED, Order(id=11, revision=1)),
        _bag(1, EntityState.MODIFIED, Order(id=5, revision=4)),
        _bag(2, EntityState.DELETED, Order(id=6, revision=9)),
        _bag(3, EntityState.UNCHANGED, Order(id=7, revision=2)),
    ]

    generated = get_generated_values(bags, make_metadata())

    assert set(generated) == {
        GeneratedValue(0, "id", 11),
        GeneratedValue(0, "revision", 1),
        GeneratedValue(1, "revision", 4),
    }


def test_types_without_generated_properties_report_nothing() -> None:
    bags = [_bag(0, EntityState.ADDED, Tag(code="t"), TAG_TYPE)]

    assert get_generated_values(bags, make_metadata()) == []


def test_indices_refer_to_submitted_positions() -> None:
    bags = [_bag(4, EntityState.ADDED, Order(id=1)), _bag(9, EntityState.ADDED, Order(id=2))]

    generated = get_generated_values(bags, make_metadata())

    assert {value.index for value in generated if value.property == "id"} == {4, 9}
