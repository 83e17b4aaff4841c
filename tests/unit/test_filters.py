"""
Unit tests for filter normalization and evaluation.
"""

from datetime import datetime, timezone

import pytest

from dbaas.entstore_server.errors import InvalidFieldError, InvalidQueryError
from dbaas.entstore_server.query.filters import (
    Filter,
    FilterOp,
    contains,
    eq,
    fuzzy,
    gt,
    gte,
    in_,
    lt,
    lte,
    matches,
    normalize_filter,
)
from dbaas.entstore_server.schema.types import EntityTypeDef, field


@pytest.fixture
def product():
    return EntityTypeDef(
        name="product",
        fields=(
            field("name", "string", indexed=True, required=True),
            field("price", "float", indexed=True),
            field("stock", "integer"),
            field("createdAt", "datetime"),
            field("isActive", "boolean"),
            field("attributes", "json"),
        ),
    )


class TestFilterConstruction:
    def test_helpers_build_filters(self):
        assert eq("name", "Desk") == Filter("name", FilterOp.EQ, "Desk")
        assert in_("stock", [1, 2]) == Filter("stock", FilterOp.IN, (1, 2))
        assert fuzzy("name", "dsk").op == FilterOp.FUZZY

    def test_from_dict(self):
        flt = Filter.from_dict({"field": "stock", "op": "in", "value": [1, 2]})
        assert flt == in_("stock", [1, 2])

    def test_from_dict_bad_op(self):
        with pytest.raises(InvalidQueryError, match="Invalid filter op"):
            Filter.from_dict({"field": "stock", "op": "between", "value": 1})

    def test_from_dict_missing_field(self):
        with pytest.raises(InvalidQueryError, match="requires 'field'"):
            Filter.from_dict({"op": "eq", "value": 1})

    def test_to_dict_lists_in_values(self):
        assert in_("stock", (1, 2)).to_dict() == {"field": "stock", "op": "in", "value": [1, 2]}


class TestNormalizeFilter:
    """Tests for normalize_filter."""

    def test_unknown_field_suggests(self, product):
        with pytest.raises(InvalidFieldError) as exc_info:
            normalize_filter(product, eq("prise", 1.0))
        assert exc_info.value.suggestions == ["price"]
        assert "Did you mean" in str(exc_info.value)

    def test_id_is_filterable(self, product):
        assert normalize_filter(product, eq("id", "3")) == eq("id", "3")

    def test_value_kind_mismatch(self, product):
        with pytest.raises(InvalidQueryError, match="does not match kind"):
            normalize_filter(product, gt("price", "cheap"))

    def test_integer_accepted_for_float(self, product):
        assert normalize_filter(product, gte("price", 20)).value == 20.0

    def test_datetime_strings_are_coerced(self, product):
        normalized = normalize_filter(product, gte("createdAt", "2024-01-01T00:00:00Z"))
        assert normalized.value == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_range_requires_value(self, product):
        with pytest.raises(InvalidQueryError, match="requires a value"):
            normalize_filter(product, lt("price", None))

    def test_range_on_json_rejected(self, product):
        with pytest.raises(InvalidQueryError):
            normalize_filter(product, gt("attributes", 1))

    def test_in_requires_list(self, product):
        with pytest.raises(InvalidQueryError, match="list of values"):
            normalize_filter(product, Filter("name", FilterOp.IN, "Desk"))

    def test_contains_on_integer_rejected(self, product):
        with pytest.raises(InvalidQueryError):
            normalize_filter(product, contains("stock", 1))

    def test_fuzzy_requires_string_field(self, product):
        with pytest.raises(InvalidQueryError):
            normalize_filter(product, fuzzy("price", "ten"))


class TestMatches:
    """Tests for matches()."""

    def test_eq_null(self):
        assert matches(None, eq("name", None))
        assert not matches("Desk", eq("name", None))

    def test_ranges(self):
        assert matches(10, gt("stock", 5))
        assert not matches(5, gt("stock", 5))
        assert matches(5, gte("stock", 5))
        assert matches(4, lt("stock", 5))
        assert matches(5, lte("stock", 5))

    def test_nulls_fail_ranges(self):
        assert not matches(None, gt("stock", 0))
        assert not matches(None, lte("stock", 0))

    def test_in_with_null(self):
        assert matches(None, in_("stock", [None, 1]))
        assert matches(1, in_("stock", [None, 1]))
        assert not matches(2, in_("stock", [None, 1]))

    def test_contains_string(self):
        assert matches("Oak Desk", contains("name", "Desk"))
        assert not matches("Oak Desk", contains("name", "desk"))

    def test_contains_json(self):
        assert matches(["red", "blue"], contains("attributes", "red"))
        assert matches({"color": "red"}, contains("attributes", "color"))
        assert not matches({"color": "red"}, contains("attributes", "red"))

    def test_fuzzy(self):
        assert matches("Office Chair", fuzzy("name", "chiar"), None) is False
        assert matches("Office Chair", fuzzy("name", "chaír"))
