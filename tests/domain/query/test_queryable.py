from __future__ import annotations

from beetle.domain.query.expressions import SortKey
from beetle.domain.query.queryable import EnumerableQueryable, as_queryable


def test_order_by_is_stable_and_places_nulls_first() -> None:
    rows = [
        {"name": "b", "rank": 2},
        {"name": "a", "rank": None},
        {"name": "c", "rank": 2},
        {"name": "d", "rank": 1},
    ]

    ordered = EnumerableQueryable(rows).order_by([SortKey(("rank",))]).to_list()

    assert [row["name"] for row in ordered] == ["a", "d", "b", "c"]


def test_order_by_multiple_keys() -> None:
    rows = [{"g": 1, "n": "x"}, {"g": 2, "n": "y"}, {"g": 1, "n": "z"}]

    ordered = (
        EnumerableQueryable(rows)
        .order_by([SortKey(("g",), descending=True), SortKey(("n",), descending=True)])
        .to_list()
    )

    assert [row["n"] for row in ordered] == ["y", "z", "x"]


def test_queryable_over_iterator_can_be_read_twice() -> None:
    query = EnumerableQueryable(iter([1, 2, 3]))

    assert query.count() == 3
    assert query.to_list() == [1, 2, 3]


def test_composition_does_not_mutate_the_source_query() -> None:
    query = EnumerableQueryable([1, 2, 3])

    query.skip(1).take(1)

    assert query.to_list() == [1, 2, 3]


def test_as_queryable_wraps_sequences_only() -> None:
    assert as_queryable([1]) is not None
    assert as_queryable((x for x in [1])) is not None
    assert as_queryable("text") is None
    assert as_queryable({"a": 1}) is None
    assert as_queryable(42) is None

    existing = EnumerableQueryable([1])
    assert as_queryable(existing) is existing
