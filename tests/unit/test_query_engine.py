"""
Unit tests for the query engine.

Tests cover:
- Conjunctive filtering with and without indexes
- Ordering, null placement and stable ties
- Default ordering by the first range field
- Range predicates on auto-increment IDs
- Pagination and its validation
- Query JSON form
"""

import pytest

from dbaas.entstore_server.config import StoreConfig
from dbaas.entstore_server.errors import (
    InvalidFieldError,
    InvalidQueryError,
    UnknownEntityTypeError,
)
from dbaas.entstore_server.query import (
    FuzzyOptions,
    Query,
    QueryEngine,
    SortDirection,
    contains,
    eq,
    fuzzy,
    gt,
    gte,
    in_,
    lt,
)
from dbaas.entstore_server.query.engine import paginate_list


@pytest.fixture
def catalog(store):
    """Five products, one with a null category and one inactive."""
    rows = [
        ("Oak Desk", 250.0, 3, "1", True),
        ("Office Chair", 120.0, 10, "1", True),
        ("Desk Lamp", 35.0, 0, "2", True),
        ("Bookshelf", 120.0, 7, None, False),
        ("Monitor Stand", 60.0, 25, "2", True),
    ]
    for name, price, stock, category, active in rows:
        store.create(
            "product",
            {
                "name": name,
                "price": price,
                "stock": stock,
                "categoryId": category,
                "isActive": active,
            },
        )
    return store


def names(records):
    return [r["name"] for r in records]


class TestFiltering:
    """Tests for filter evaluation."""

    def test_no_filters_returns_all_in_insertion_order(self, catalog):
        assert names(catalog.query(Query("product"))) == [
            "Oak Desk",
            "Office Chair",
            "Desk Lamp",
            "Bookshelf",
            "Monitor Stand",
        ]

    def test_indexed_eq(self, catalog):
        result = catalog.query(Query("product", (eq("price", 120.0),)))
        assert names(result) == ["Office Chair", "Bookshelf"]

    def test_non_indexed_eq(self, catalog):
        result = catalog.query(Query("product", (eq("categoryId", "2"),)))
        assert names(result) == ["Desk Lamp", "Monitor Stand"]

    def test_eq_null(self, catalog):
        result = catalog.query(Query("product", (eq("categoryId", None),)))
        assert names(result) == ["Bookshelf"]

    def test_conjunction_mixes_index_and_scan(self, catalog):
        """Ordered by stock, the first range field, though it has no index."""
        result = catalog.query(
            Query("product", (eq("isActive", True), gte("stock", 5), lt("price", 200.0)))
        )
        assert names(result) == ["Office Chair", "Monitor Stand"]

    def test_in_on_id(self, catalog):
        result = catalog.query(Query("product", (in_("id", ["2", "4", "99"]),)))
        assert [r.id for r in result] == ["2", "4"]

    def test_eq_on_missing_id(self, catalog):
        assert catalog.query(Query("product", (eq("id", "99"),))) == []

    def test_contains(self, catalog):
        result = catalog.query(Query("product", (contains("name", "Desk"),)))
        assert names(result) == ["Oak Desk", "Desk Lamp"]

    def test_fuzzy_with_default_options(self, catalog):
        result = catalog.query(Query("product", (fuzzy("name", "lamb"),)))
        assert names(result) == ["Desk Lamp"]

    def test_fuzzy_with_strict_options(self, catalog):
        query = Query(
            "product",
            (fuzzy("name", "lamb"),),
            fuzzy_options=FuzzyOptions(threshold=1.0, max_distance=0),
        )
        assert catalog.query(query) == []

    def test_count_ignores_paging(self, catalog):
        assert catalog.count("product", [eq("isActive", True)]) == 4

    def test_unknown_field(self, catalog):
        with pytest.raises(InvalidFieldError):
            catalog.query(Query("product", (eq("colour", "red"),)))

    def test_unknown_entity_type(self, catalog):
        with pytest.raises(UnknownEntityTypeError):
            catalog.query(Query("spaceship"))


class TestOrdering:
    """Tests for ordering."""

    def test_order_ascending_with_stable_ties(self, catalog):
        result = catalog.query(Query("product", order_by="price"))
        assert names(result) == [
            "Desk Lamp",
            "Monitor Stand",
            "Office Chair",
            "Bookshelf",
            "Oak Desk",
        ]

    def test_order_descending(self, catalog):
        result = catalog.query(Query("product", order_by="stock", direction=SortDirection.DESC))
        assert names(result)[0] == "Monitor Stand"
        assert names(result)[-1] == "Desk Lamp"

    def test_nulls_first_ascending_last_descending(self, catalog):
        ascending = catalog.query(Query("product", order_by="categoryId"))
        descending = catalog.query(
            Query("product", order_by="categoryId", direction=SortDirection.DESC)
        )
        assert names(ascending)[0] == "Bookshelf"
        assert names(descending)[-1] == "Bookshelf"

    def test_order_by_auto_increment_id_is_numeric(self, store):
        for i in range(11):
            store.create("product", {"name": f"P{i}", "price": 1.0})
        result = store.query(Query("product", order_by="id", direction=SortDirection.DESC))
        assert [r.id for r in result][:3] == ["11", "10", "9"]

    def test_default_order_follows_indexed_range_field(self, catalog):
        """Without order_by, an indexed range predicate orders by its field."""
        result = catalog.query(Query("product", (gt("price", 50.0),)))
        assert names(result) == ["Monitor Stand", "Office Chair", "Bookshelf", "Oak Desk"]

    def test_default_order_follows_unindexed_range_field(self, catalog):
        """stock has no index and still orders a range query by its values."""
        result = catalog.query(Query("product", (gte("stock", 3),)))
        assert names(result) == ["Oak Desk", "Bookshelf", "Office Chair", "Monitor Stand"]

    def test_range_on_auto_increment_id_is_numeric(self, store):
        for i in range(11):
            store.create("product", {"name": f"P{i}", "price": 1.0})
        result = store.query(Query("product", (gte("id", "5"), lt("id", "11"))))
        assert [r.id for r in result] == ["5", "6", "7", "8", "9", "10"]

    def test_range_on_uuid_id_is_lexicographic(self, store):
        store.create("review", {"productId": "1", "rating": 3}, record_id="b")
        store.create("review", {"productId": "1", "rating": 3}, record_id="a")
        store.create("review", {"productId": "1", "rating": 3}, record_id="c")
        result = store.query(Query("review", (gt("id", "a"),)))
        assert [r.id for r in result] == ["b", "c"]

    def test_order_by_json_rejected(self, catalog):
        with pytest.raises(InvalidQueryError):
            catalog.query(Query("product", order_by="attributes"))

    def test_direction_parse(self):
        assert SortDirection.parse("desc") == SortDirection.DESC
        with pytest.raises(InvalidQueryError):
            SortDirection.parse("sideways")


class TestPagination:
    """Tests for limit and offset."""

    def test_limit_and_offset(self, catalog):
        result = catalog.query(Query("product", order_by="price", limit=2, offset=1))
        assert names(result) == ["Monitor Stand", "Office Chair"]

    def test_offset_past_end(self, catalog):
        assert catalog.query(Query("product", offset=50)) == []

    def test_zero_limit(self, catalog):
        assert catalog.query(Query("product", limit=0)) == []

    def test_negative_offset_rejected(self, catalog):
        with pytest.raises(InvalidQueryError, match="offset"):
            catalog.query(Query("product", offset=-1))

    def test_negative_limit_rejected(self, catalog):
        with pytest.raises(InvalidQueryError, match="limit"):
            catalog.query(Query("product", limit=-5))

    def test_limit_above_maximum_rejected(self, registry):
        engine = QueryEngine(registry, StoreConfig(max_query_limit=10))
        with pytest.raises(InvalidQueryError, match="<= 10"):
            engine.prepare(Query("product", limit=11))

    def test_paginate_list(self):
        assert paginate_list([1, 2, 3, 4], offset=1, limit=2) == [2, 3]
        assert paginate_list([1, 2, 3, 4], offset=3) == [4]


class TestQueryDict:
    """Tests for the JSON form of queries."""

    def test_from_dict(self):
        query = Query.from_dict(
            {
                "filters": [{"field": "price", "op": "gte", "value": 20}],
                "order_by": "price",
                "direction": "desc",
                "limit": "5",
                "fuzzy": {"threshold": 0.5},
            },
            entity_type="product",
        )
        assert query.entity_type == "product"
        assert query.filters == (gte("price", 20),)
        assert query.direction == SortDirection.DESC
        assert query.limit == 5
        assert query.fuzzy_options == FuzzyOptions(threshold=0.5)

    def test_from_dict_requires_entity_type(self):
        with pytest.raises(InvalidQueryError):
            Query.from_dict({"filters": []})

    def test_from_dict_rejects_bad_limit(self):
        with pytest.raises(InvalidQueryError, match="Malformed"):
            Query.from_dict({"limit": "lots"}, entity_type="product")

    def test_round_trip(self):
        query = Query("product", (eq("name", "Desk"),), order_by="price", limit=3)
        assert Query.from_dict(query.to_dict()) == query
