from __future__ import annotations

from beetle.adapters.sqlalchemy import build_metadata, entity_type_for
from beetle.domain.metadata import GenerationPattern
from tests.helpers.sql_models import Customer, Order, start_mappers


def test_columns_become_data_properties() -> None:
    start_mappers()

    entity_type = entity_type_for(Customer)

    assert [prop.name for prop in entity_type.data_properties] == ["id", "name", "city"]
    assert [prop.name for prop in entity_type.keys] == ["id"]
    name = entity_type.data_property("name")
    assert name is not None
    assert name.data_type is str
    assert name.nullable is False


def test_generation_patterns_follow_column_defaults() -> None:
    start_mappers()

    entity_type = entity_type_for(Order)

    patterns = {prop.name: prop.generation_pattern for prop in entity_type.data_properties}
    assert patterns == {
        "id": GenerationPattern.IDENTITY,
        "customer_id": GenerationPattern.NONE,
        "total": GenerationPattern.NONE,
        "revision": GenerationPattern.COMPUTED,
    }


def test_relationships_become_navigation_properties() -> None:
    start_mappers()

    metadata = build_metadata("shop", [Customer, Order])

    orders = metadata.require("Customer").navigation_property("orders")
    customer = metadata.require("Order").navigation_property("customer")
    assert orders is not None
    assert orders.is_scalar is False
    assert orders.target_type == "Order"
    assert orders.foreign_keys == ()
    assert customer is not None
    assert customer.is_scalar is True
    assert customer.foreign_keys == ("customer_id",)


def test_mapped_class_is_the_factory() -> None:
    start_mappers()

    entity_type = entity_type_for(Customer)

    assert entity_type.factory is Customer
