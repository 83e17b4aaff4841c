"""
Unit tests for schema types.

Tests cover:
- FieldDef creation and validation
- Datetime parsing and coercion
- EntityTypeDef creation and validation
- Payload validation
- Type serialization/deserialization
"""

from datetime import datetime, timedelta, timezone

import pytest

from dbaas.entstore_server.schema.types import (
    EntityTypeDef,
    FieldDef,
    FieldKind,
    IdStrategy,
    field,
    parse_datetime,
)


class TestFieldDef:
    """Tests for FieldDef."""

    def test_create_string_field(self):
        """String field can be created with defaults."""
        f = field("name", "string")
        assert f.name == "name"
        assert f.kind == FieldKind.STRING
        assert f.indexed is False
        assert f.required is False
        assert f.nullable is True

    def test_unknown_kind_raises(self):
        """Unknown kind names are rejected."""
        with pytest.raises(ValueError, match="Invalid field kind"):
            field("name", "text")

    def test_empty_name_raises(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            field("", "string")

    def test_id_name_is_reserved(self):
        """'id' is reserved for the record ID."""
        with pytest.raises(ValueError, match="reserved"):
            field("id", "string")

    def test_json_field_cannot_be_indexed(self):
        with pytest.raises(ValueError, match="cannot be indexed"):
            field("attributes", "json", indexed=True)

    def test_invalid_default_raises(self):
        with pytest.raises(ValueError, match="Invalid default"):
            field("stock", "integer", default="many")

    def test_validate_required_field(self):
        """Required field rejects null."""
        f = field("name", "string", required=True)
        is_valid, error = f.validate_value(None)
        assert not is_valid
        assert "required" in error

    def test_validate_non_nullable_field(self):
        """Non-nullable field rejects null even when optional."""
        f = field("sku", "string", nullable=False)
        is_valid, error = f.validate_value(None)
        assert not is_valid
        assert "not nullable" in error

    def test_nullable_optional_field_accepts_null(self):
        assert field("description", "string").validate_value(None) == (True, None)

    @pytest.mark.parametrize(
        "kind,value,expected",
        [
            ("string", "Desk", True),
            ("string", 3, False),
            ("integer", 3, True),
            ("integer", True, False),
            ("integer", 3.5, False),
            ("float", 3, True),
            ("float", 3.5, True),
            ("float", False, False),
            ("boolean", True, True),
            ("boolean", 1, False),
            ("datetime", datetime(2024, 1, 1), True),
            ("datetime", "2024-01-01T10:00:00Z", True),
            ("datetime", "yesterday", False),
            ("json", {"color": "red", "sizes": [1, 2]}, True),
            ("json", {"bad": object()}, False),
        ],
    )
    def test_validate_kinds(self, kind, value, expected):
        """Each kind accepts exactly its values."""
        is_valid, _ = field("value", kind).validate_value(value)
        assert is_valid is expected

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_float_rejects_non_finite(self, value):
        """NaN and infinities have no place in an ordered index."""
        is_valid, error = field("price", "float", indexed=True).validate_value(value)
        assert is_valid is False
        assert "finite" in error

    def test_float_accepts_large_int(self):
        assert field("price", "float").validate_value(10**400) == (True, None)

    def test_coerce_datetime_to_utc(self):
        """Datetimes are normalized to aware UTC."""
        f = field("createdAt", "datetime")
        plus_two = timezone(timedelta(hours=2))

        assert f.coerce("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        assert f.coerce(datetime(2024, 3, 1, 12)) == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        assert f.coerce(datetime(2024, 3, 1, 14, tzinfo=plus_two)).tzinfo == timezone.utc
        assert f.coerce(datetime(2024, 3, 1, 14, tzinfo=plus_two)).hour == 12

    def test_parse_datetime_rejects_garbage(self):
        assert parse_datetime("not a date") is None
        assert parse_datetime(12345) is None

    def test_field_to_dict(self):
        """Field serializes to dict, omitting defaults."""
        f = field("price", "float", indexed=True, required=True, description="Unit price")
        assert f.to_dict() == {
            "name": "price",
            "kind": "float",
            "indexed": True,
            "required": True,
            "description": "Unit price",
        }

    def test_field_from_dict(self):
        """Field deserializes from dict."""
        f = FieldDef.from_dict(
            {"name": "stock", "kind": "integer", "indexed": True, "default": 0, "nullable": False}
        )
        assert f == field("stock", "integer", indexed=True, default=0, nullable=False)


class TestEntityTypeDef:
    """Tests for EntityTypeDef."""

    @pytest.fixture
    def product(self):
        return EntityTypeDef(
            name="product",
            fields=(
                field("name", "string", indexed=True, required=True),
                field("price", "float", indexed=True, required=True),
                field("stock", "integer", required=True, default=0),
                field("description", "string"),
            ),
        )

    def test_create_entity_type(self, product):
        """Entity type can be created."""
        assert product.name == "product"
        assert product.id_strategy == IdStrategy.AUTO_INCREMENT
        assert product.get_field_names() == ["name", "price", "stock", "description"]
        assert [f.name for f in product.get_indexed_fields()] == ["name", "price"]
        assert [f.name for f in product.get_required_fields()] == ["name", "price", "stock"]

    def test_duplicate_field_names_raise(self):
        with pytest.raises(ValueError, match="Duplicate field name"):
            EntityTypeDef(name="x", fields=(field("a", "string"), field("a", "integer")))

    def test_empty_name_raises(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            EntityTypeDef(name="")

    def test_has_field_includes_id(self, product):
        assert product.has_field("id")
        assert product.has_field("price")
        assert not product.has_field("cost")

    def test_apply_defaults(self, product):
        """Absent fields take their defaults; present ones are kept."""
        full = product.apply_defaults({"name": "Desk", "price": 120.0})
        assert full == {"name": "Desk", "price": 120.0, "stock": 0, "description": None}

    def test_validate_payload_valid(self, product):
        is_valid, errors = product.validate_payload({"name": "Desk", "price": 120.0})
        assert is_valid
        assert errors == []

    def test_validate_payload_missing_required(self, product):
        """Missing required field without default is reported."""
        is_valid, errors = product.validate_payload({"name": "Desk"})
        assert not is_valid
        assert any("'price' is required" in e for e in errors)

    def test_validate_payload_unknown_field(self, product):
        """Unknown fields are reported with suggestions."""
        is_valid, errors = product.validate_payload({"name": "Desk", "price": 1.0, "prise": 2})
        assert not is_valid
        assert errors == ["Unknown field 'prise'. Did you mean: ['price']?"]

    def test_validate_payload_collects_every_error(self, product):
        is_valid, errors = product.validate_payload({"name": 5, "price": "cheap"})
        assert not is_valid
        assert len(errors) == 2

    def test_round_trip(self, product):
        """to_dict/from_dict preserve the definition."""
        restored = EntityTypeDef.from_dict(product.to_dict())
        assert restored == product

    def test_from_dict_defaults_to_auto_increment(self):
        restored = EntityTypeDef.from_dict({"name": "tag", "fields": []})
        assert restored.id_strategy == IdStrategy.AUTO_INCREMENT
