from __future__ import annotations

from dataclasses import dataclass

import pytest

from beetle.domain.errors import InvalidQuery
from beetle.domain.query.expressions import (
    Call,
    Compare,
    CompareOp,
    Literal,
    Logical,
    LogicalOp,
    Member,
    Method,
    Not,
    SortKey,
    evaluate,
    parse_filter,
    parse_member_paths,
    parse_order_by,
)


@dataclass
class _Address:
    city: str | None


@dataclass
class _Person:
    name: str
    age: int | None
    address: _Address | None = None


def test_parse_filter_builds_comparison() -> None:
    node = parse_filter("Age >= 18")

    assert node == Compare(CompareOp.GE, Member(("Age",)), Literal(18))


def test_parse_filter_accepts_word_operators() -> None:
    assert parse_filter("Age ge 18 and Name eq 'Ann'") == parse_filter(
        'Age >= 18 && Name == "Ann"'
    )


def test_parse_filter_respects_precedence() -> None:
    node = parse_filter("a == 1 || b == 2 && c == 3")

    assert isinstance(node, Logical)
    assert node.op is LogicalOp.OR
    second = node.operands[1]
    assert isinstance(second, Logical)
    assert second.op is LogicalOp.AND


def test_parse_filter_method_calls_and_negation() -> None:
    node = parse_filter('!Name.toLower().startsWith("an")')

    assert node == Not(
        Call(
            Method.STARTS_WITH,
            Call(Method.TO_LOWER, Member(("Name",))),
            (Literal("an"),),
        )
    )


def test_parse_filter_literals() -> None:
    node = parse_filter("Score > -1.5 && Active == true && Deleted != null")

    assert isinstance(node, Logical)
    assert node.operands[0] == Compare(CompareOp.GT, Member(("Score",)), Literal(-1.5))
    assert node.operands[1] == Compare(CompareOp.EQ, Member(("Active",)), Literal(True))
    assert node.operands[2] == Compare(CompareOp.NE, Member(("Deleted",)), Literal(None))


@pytest.mark.parametrize(
    "source",
    ["", "Age >=", "Age >= 18 )", "Name.shout()", "Name.contains()", "Age # 3", "(Age > 1"],
)
def test_parse_filter_rejects_malformed_input(source: str) -> None:
    with pytest.raises(InvalidQuery):
        parse_filter(source)


def test_parse_order_by_reads_directions() -> None:
    keys = parse_order_by("Name desc, Address.City")

    assert keys == (SortKey(("Name",), descending=True), SortKey(("Address", "City")))


@pytest.mark.parametrize("text", ["Name sideways", "Name desc extra", ",", "1Name"])
def test_parse_order_by_rejects_invalid_clauses(text: str) -> None:
    with pytest.raises(InvalidQuery):
        parse_order_by(text)


def test_parse_member_paths_splits_dotted_paths() -> None:
    assert parse_member_paths("Orders, Address.City") == (("Orders",), ("Address", "City"))


def test_evaluate_against_objects_and_mappings() -> None:
    node = parse_filter('address.city == "Oslo" && age > 30')

    assert evaluate(node, _Person("Ann", 40, _Address("Oslo"))) is True
    assert evaluate(node, {"age": 40, "address": {"city": "Oslo"}}) is True
    assert evaluate(node, _Person("Bob", 20, _Address("Oslo"))) is False


def test_evaluate_ordering_against_null_is_false() -> None:
    node = parse_filter("age < 30")

    assert evaluate(node, _Person("Ann", None)) is False


def test_evaluate_navigating_through_null_yields_null() -> None:
    node = parse_filter("address.city == null")

    assert evaluate(node, _Person("Ann", 1, None)) is True


def test_evaluate_unknown_member_raises() -> None:
    with pytest.raises(InvalidQuery):
        evaluate(parse_filter("height > 2"), _Person("Ann", 1))


def test_evaluate_incomparable_types_raise() -> None:
    with pytest.raises(InvalidQuery):
        evaluate(parse_filter('age > "old"'), _Person("Ann", 1))


def test_evaluate_string_methods() -> None:
    person = _Person("Annabel", 1)

    assert evaluate(parse_filter('name.contains("nab")'), person) is True
    assert evaluate(parse_filter('name.endsWith("bel")'), person) is True
    assert evaluate(parse_filter('name.toUpper() == "ANNABEL"'), person) is True
