from __future__ import annotations

from decimal import Decimal

import pytest

from beetle.domain.errors import InvalidSaveBundle, TypeNotFound
from beetle.domain.metadata import TypeRegistry
from beetle.domain.model import EntityBag, EntityState
from beetle.domain.resolution import coerce_values, resolve_entities
from tests.helpers.entities import Customer, Order, change, make_metadata


def _resolve(raw: object) -> tuple[list[EntityBag], list[EntityBag]]:
    metadata = make_metadata()
    registry = TypeRegistry.from_metadata(metadata)
    return resolve_entities(raw, metadata=metadata, create_instance=registry.create)


def test_known_entities_resolve_to_typed_instances() -> None:
    known, unknown = _resolve(
        [
            change("Customer", "Added", id=-1, name="Ann"),
            change("Order", "Modified", id=3, customer_id=1, total="9.50"),
        ]
    )

    assert unknown == []
    assert [bag.index for bag in known] == [0, 1]
    customer, order = known
    assert isinstance(customer.entity, Customer)
    assert customer.entity == Customer(id=-1, name="Ann")
    assert isinstance(order.entity, Order)
    assert order.entity.total == Decimal("9.50")
    assert order.entity_state is EntityState.MODIFIED


def test_client_and_server_entities_are_distinct_objects() -> None:
    (bag,), _ = _resolve([change("Customer", "Added", name="Ann")])

    assert bag.client_entity == bag.entity
    assert bag.client_entity is not bag.entity


def test_unknown_types_keep_their_batch_position() -> None:
    known, unknown = _resolve(
        [
            change("Customer", "Added", name="Ann"),
            change("CustomerView", "Added", label="x"),
            change("Tag", "Added", code="t"),
        ]
    )

    assert [bag.index for bag in known] == [0, 2]
    assert [bag.index for bag in unknown] == [1]
    assert unknown[0].entity == {"label": "x"}
    assert unknown[0].entity_type is None


def test_bundle_force_update_applies_to_every_entity() -> None:
    known, _ = _resolve(
        {"entities": [change("Tag", "Modified", code="t")], "forceUpdate": True}
    )

    assert known[0].force_update is True


def test_original_values_are_coerced() -> None:
    (bag,), _ = _resolve(
        [change("Order", "Modified", id=1, original_values={"total": "1.25", "bogus": 1})]
    )

    assert bag.original_values == {"total": Decimal("1.25")}


def test_invalid_value_reports_the_entity_index() -> None:
    with pytest.raises(InvalidSaveBundle) as excinfo:
        _resolve([change("Tag", "Added", code="a"), change("Order", "Added", customer_id="x")])

    assert excinfo.value.index == 1


def test_coerce_values_drops_unknown_and_navigation_names() -> None:
    order_type = make_metadata().require("Order")

    values = coerce_values(order_type, {"id": "4", "customer": {}, "extra": 1, "total": None})

    assert values == {"id": 4, "total": None}


def test_create_instance_for_unknown_type_raises() -> None:
    with pytest.raises(TypeNotFound, match="Ghost"):
        TypeRegistry.from_metadata(make_metadata()).create("Ghost")
