"""
Filter predicates for EntStore queries.

A query is a conjunction of Filters. Each Filter names a field (or "id"),
an operator and a comparison value. Filters are normalized against the
entity schema before evaluation: unknown fields are rejected and values
are validated and coerced exactly like written field values, so an index
lookup and a full scan always agree.

Operators:
    eq        field == value (value may be None to match nulls)
    gt/gte    field > / >= value (nulls never match)
    lt/lte    field < / <= value (nulls never match)
    in        field equals one of the values
    contains  substring for strings, membership for JSON lists/objects
    fuzzy     approximate string match (see fuzzy.py)

Example:
    >>> from entstore_server.query.filters import eq, gte
    >>> filters = [eq("isActive", True), gte("price", 20.0)]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from ..errors import InvalidFieldError, InvalidQueryError
from ..schema.types import ID_FIELD, EntityTypeDef, FieldDef, FieldKind
from .fuzzy import FuzzyOptions, fuzzy_match

# The record ID behaves like a required, indexed string field.
ID_FIELD_DEF = FieldDef(name="_id", kind=FieldKind.STRING, required=True, nullable=False)


class FilterOp(Enum):
    """Filter operators."""

    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"
    FUZZY = "fuzzy"

    @property
    def is_range(self) -> bool:
        return self in (FilterOp.GT, FilterOp.GTE, FilterOp.LT, FilterOp.LTE)


@dataclass(frozen=True)
class Filter:
    """A single predicate on one field.

    Attributes:
        field: Field name, or "id" for the record ID
        op: Operator
        value: Comparison value (a tuple of values for IN)
    """

    field: str
    op: FilterOp
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if isinstance(value, tuple):
            value = list(value)
        return {"field": self.field, "op": self.op.value, "value": value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Filter:
        if not isinstance(data, dict):
            raise InvalidQueryError(f"Filter must be an object, got {type(data).__name__}")
        try:
            op = FilterOp(data["op"])
        except ValueError:
            valid = [o.value for o in FilterOp]
            raise InvalidQueryError(f"Invalid filter op '{data['op']}'. Valid ops: {valid}")
        except KeyError:
            raise InvalidQueryError("Filter requires 'op'")
        if "field" not in data:
            raise InvalidQueryError("Filter requires 'field'")
        value = data.get("value")
        if op == FilterOp.IN and isinstance(value, list):
            value = tuple(value)
        return cls(field=data["field"], op=op, value=value)


def eq(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.EQ, value)


def gt(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.GT, value)


def gte(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.GTE, value)


def lt(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.LT, value)


def lte(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.LTE, value)


def in_(field: str, values: Iterable[Any]) -> Filter:
    return Filter(field, FilterOp.IN, tuple(values))


def contains(field: str, value: Any) -> Filter:
    return Filter(field, FilterOp.CONTAINS, value)


def fuzzy(field: str, value: str) -> Filter:
    return Filter(field, FilterOp.FUZZY, value)


def resolve_field(entity_type: EntityTypeDef, name: str) -> FieldDef:
    """Field definition for name, with "id" mapped to a string pseudo-field.

    Raises:
        InvalidFieldError: If the field is not declared
    """
    if name == ID_FIELD:
        return ID_FIELD_DEF
    field_def = entity_type.get_field(name)
    if field_def is None:
        raise InvalidFieldError(name, entity_type.name, entity_type.suggest_fields(name))
    return field_def


def _coerce_operand(field_def: FieldDef, name: str, value: Any, op: FilterOp) -> Any:
    if value is None:
        return None
    is_valid, _ = FieldDef(name=field_def.name, kind=field_def.kind).validate_value(value)
    if not is_valid:
        raise InvalidQueryError(
            f"Value {value!r} for '{op.value}' on '{name}' does not match kind "
            f"{field_def.kind.value}",
            field_name=name,
        )
    return field_def.coerce(value)


def normalize_filter(entity_type: EntityTypeDef, flt: Filter) -> Filter:
    """Validate a filter against the schema and coerce its value.

    Raises:
        InvalidFieldError: If the field is not declared
        InvalidQueryError: If the operator or value does not fit the field
    """
    field_def = resolve_field(entity_type, flt.field)
    kind = field_def.kind
    op = flt.op

    if op == FilterOp.EQ:
        return Filter(flt.field, op, _coerce_operand(field_def, flt.field, flt.value, op))

    if op.is_range:
        if kind == FieldKind.JSON:
            raise InvalidQueryError(
                f"Range filter '{op.value}' is not supported on JSON field '{flt.field}'",
                field_name=flt.field,
            )
        if flt.value is None:
            raise InvalidQueryError(
                f"Range filter '{op.value}' on '{flt.field}' requires a value",
                field_name=flt.field,
            )
        return Filter(flt.field, op, _coerce_operand(field_def, flt.field, flt.value, op))

    if op == FilterOp.IN:
        if isinstance(flt.value, (str, bytes, dict)) or not isinstance(
            flt.value, (list, tuple, set, frozenset)
        ):
            raise InvalidQueryError(
                f"Filter 'in' on '{flt.field}' requires a list of values",
                field_name=flt.field,
            )
        return Filter(
            flt.field,
            op,
            tuple(_coerce_operand(field_def, flt.field, v, op) for v in flt.value),
        )

    if op == FilterOp.CONTAINS:
        if kind == FieldKind.STRING:
            if not isinstance(flt.value, str):
                raise InvalidQueryError(
                    f"Filter 'contains' on '{flt.field}' requires a string",
                    field_name=flt.field,
                )
            return flt
        if kind == FieldKind.JSON:
            return flt
        raise InvalidQueryError(
            f"Filter 'contains' is not supported on {kind.value} field '{flt.field}'",
            field_name=flt.field,
        )

    if op == FilterOp.FUZZY:
        if kind != FieldKind.STRING:
            raise InvalidQueryError(
                f"Filter 'fuzzy' is not supported on {kind.value} field '{flt.field}'",
                field_name=flt.field,
            )
        if not isinstance(flt.value, str):
            raise InvalidQueryError(
                f"Filter 'fuzzy' on '{flt.field}' requires a string",
                field_name=flt.field,
            )
        return flt

    raise InvalidQueryError(f"Unsupported filter op '{op.value}'", field_name=flt.field)


def matches(value: Any, flt: Filter, fuzzy_options: FuzzyOptions | None = None) -> bool:
    """Evaluate a normalized filter against one field value."""
    op = flt.op
    target = flt.value

    if op == FilterOp.EQ:
        if target is None:
            return value is None
        return value is not None and value == target
    if op == FilterOp.IN:
        return any(value is None if t is None else value == t for t in target)

    if value is None:
        return False

    if op == FilterOp.GT:
        return value > target
    if op == FilterOp.GTE:
        return value >= target
    if op == FilterOp.LT:
        return value < target
    if op == FilterOp.LTE:
        return value <= target
    if op == FilterOp.CONTAINS:
        if isinstance(value, str):
            return isinstance(target, str) and target in value
        if isinstance(value, list):
            return target in value
        if isinstance(value, dict):
            return isinstance(target, str) and target in value
        return False
    if op == FilterOp.FUZZY:
        return isinstance(value, str) and fuzzy_match(value, target, fuzzy_options)
    return False
