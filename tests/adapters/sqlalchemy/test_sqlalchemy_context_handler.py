from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from beetle.adapters.sqlalchemy import SqlAlchemyContextHandler, SqlAlchemyQueryable
from beetle.config import BeetleConfig
from beetle.domain.errors import ConcurrencyConflict, NotSupported, PersistenceFailure
from beetle.domain.model import GeneratedValue
from beetle.domain.service import BeetleService
from tests.helpers.entities import change
from tests.helpers.sql_models import Customer, Order

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session

type SqlService = BeetleService[SqlAlchemyContextHandler]


@pytest.fixture
def ann(sqlite_session: Session) -> Customer:
    customer = Customer(name="Ann", city="Oslo")
    sqlite_session.add(customer)
    sqlite_session.commit()
    return customer


def _names(session: Session) -> list[str]:
    return sorted(session.scalars(select(Customer.name)))


def test_metadata_is_built_from_mappers(sql_handler: SqlAlchemyContextHandler) -> None:
    metadata = sql_handler.metadata()

    assert metadata.name == "shop"
    assert metadata.type_names == ("Customer", "Order")
    assert sql_handler.metadata() is metadata


def test_create_instance_uses_mapped_class(sql_handler: SqlAlchemyContextHandler) -> None:
    assert isinstance(sql_handler.create_instance("Order"), Order)


def test_session_must_be_injected_without_factory() -> None:
    handler = SqlAlchemyContextHandler([Customer, Order])

    with pytest.raises(NotSupported):
        handler.initialize()


def test_session_factory_creates_session_on_first_use(sqlite_session: Session) -> None:
    calls: list[int] = []

    def factory() -> Session:
        calls.append(1)
        return sqlite_session

    handler = SqlAlchemyContextHandler([Customer, Order], session_factory=factory)

    assert handler.session is sqlite_session
    assert handler.session is sqlite_session
    assert calls == [1]


def test_added_entities_get_database_identities(sql_service: SqlService) -> None:
    result = sql_service.save_changes(
        [
            change("Customer", "Added", id=-1, name="Ann"),
            change("Customer", "Added", id=-2, name="Bea", city="Rome"),
        ]
    )

    assert result.affected_count == 2
    assert set(result.generated_values) == {GeneratedValue(0, "id", 1), GeneratedValue(1, "id", 2)}
    assert _names(sql_service.require_handler().session) == ["Ann", "Bea"]


def test_server_defaults_are_reported(sql_service: SqlService, ann: Customer) -> None:
    result = sql_service.save_changes(
        [change("Order", "Added", id=-5, customer_id=ann.id, total=12.5, revision=99)]
    )

    assert set(result.generated_values) == {
        GeneratedValue(0, "id", 1),
        GeneratedValue(0, "revision", 1),
    }


def test_modified_entity_is_updated(
    sql_service: SqlService, sqlite_session: Session, ann: Customer
) -> None:
    result = sql_service.save_changes(
        [
            change(
                "Customer",
                "Modified",
                id=ann.id,
                name="Anna",
                city="Oslo",
                original_values={"name": "Ann"},
            )
        ]
    )

    assert result.affected_count == 1
    sqlite_session.expire_all()
    assert _names(sqlite_session) == ["Anna"]


def test_unchanged_modification_is_skipped_unless_forced(
    sql_service: SqlService, ann: Customer
) -> None:
    unchanged = change("Customer", "Modified", id=ann.id, name="Ann", city="Oslo")

    assert sql_service.save_changes([unchanged]).affected_count == 0
    assert sql_service.save_changes([{**unchanged, "forceUpdate": True}]).affected_count == 1


def test_modified_orders_report_computed_values(
    sql_service: SqlService, sqlite_session: Session, ann: Customer
) -> None:
    order = Order(customer_id=ann.id, total=5.0)
    sqlite_session.add(order)
    sqlite_session.commit()

    result = sql_service.save_changes(
        [change("Order", "Modified", id=order.id, customer_id=ann.id, total=7.5)]
    )

    assert result.generated_values == (GeneratedValue(0, "revision", 1),)


def test_deleted_entity_is_removed(
    sql_service: SqlService, sqlite_session: Session, ann: Customer
) -> None:
    result = sql_service.save_changes([change("Customer", "Deleted", id=ann.id, name="Ann")])

    assert result.affected_count == 1
    assert _names(sqlite_session) == []


def test_conflict_rolls_back_the_batch(
    sql_service: SqlService, sqlite_session: Session, ann: Customer
) -> None:
    with pytest.raises(ConcurrencyConflict) as excinfo:
        sql_service.save_changes(
            [
                change("Customer", "Added", name="Zed"),
                change(
                    "Customer",
                    "Modified",
                    id=ann.id,
                    name="Anna",
                    original_values={"name": "Someone else"},
                ),
            ]
        )

    assert excinfo.value.index == 1
    assert _names(sqlite_session) == ["Ann"]


def test_missing_row_is_a_conflict(sql_service: SqlService) -> None:
    with pytest.raises(ConcurrencyConflict):
        sql_service.save_changes([change("Customer", "Modified", id=42, name="Ghost")])


def test_database_errors_become_persistence_failures(
    sql_service: SqlService, sqlite_session: Session
) -> None:
    with pytest.raises(PersistenceFailure):
        sql_service.save_changes(
            [change("Customer", "Added", name="Ann"), change("Customer", "Added", city="Oslo")]
        )

    assert _names(sqlite_session) == []


@pytest.mark.usefixtures("ann")
def test_queries_run_through_the_service(sql_service: SqlService) -> None:
    handler = sql_service.require_handler()
    sql_service.save_changes(
        [change("Customer", "Added", name="Bea"), change("Customer", "Added", name="Cleo")]
    )

    result = sql_service.execute_action(
        "Customers",
        handler.query("Customer"),
        {"filter": 'name != "Bea"', "orderBy": "name desc", "inlineCount": "true", "take": "1"},
    )

    assert [customer.name for customer in result.result] == ["Cleo"]
    assert result.inline_count == 2


def test_select_statements_are_queryable(sql_handler: SqlAlchemyContextHandler) -> None:
    statement = select(Customer).where(Customer.city == "Oslo")

    query = sql_handler.as_queryable(statement)

    assert isinstance(query, SqlAlchemyQueryable)
    assert query.statement is statement


def test_multi_entity_statements_are_not_queryable(
    sql_handler: SqlAlchemyContextHandler,
) -> None:
    with pytest.raises(NotSupported):
        sql_handler.as_queryable(select(Customer, Order))


@pytest.fixture
def enforcing_service(enforcing_sqlite_engine: Engine) -> Iterator[SqlService]:
    session = sessionmaker(bind=enforcing_sqlite_engine, expire_on_commit=False)()
    try:
        yield BeetleService(
            SqlAlchemyContextHandler([Customer, Order], session), config=BeetleConfig()
        )
    finally:
        session.close()


def test_children_are_linked_to_parent_added_in_same_batch(
    enforcing_service: SqlService,
) -> None:
    session = enforcing_service.require_handler().session
    session.add(Customer(name="Existing"))
    session.commit()

    result = enforcing_service.save_changes(
        [
            change("Order", "Added", id=-1, customer_id=-1, total=5.0),
            change("Customer", "Added", id=-1, name="Ann"),
            change("Order", "Added", id=-2, customer_id=-1, total=7.0),
        ]
    )

    ann = session.scalars(select(Customer).where(Customer.name == "Ann")).one()
    orders = session.scalars(select(Order).order_by(Order.total)).all()
    assert ann.id == 2
    assert [order.customer_id for order in orders] == [2, 2]
    assert GeneratedValue(1, "id", 2) in result.generated_values


def test_modified_child_is_moved_to_added_parent(enforcing_service: SqlService) -> None:
    session = enforcing_service.require_handler().session
    old = Customer(name="Old")
    session.add(old)
    session.flush()
    order = Order(customer_id=old.id, total=5.0)
    session.add(order)
    session.commit()

    enforcing_service.save_changes(
        [
            change("Customer", "Added", id=-7, name="New"),
            change("Order", "Modified", id=order.id, customer_id=-7, total=5.0),
        ]
    )

    session.expire_all()
    moved = session.get(Order, order.id)
    assert moved is not None
    assert moved.customer is not None
    assert moved.customer.name == "New"
