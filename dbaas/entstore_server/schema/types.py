"""
Core type definitions for the EntStore schema system.

This module defines the foundational types for entity schemas:
- FieldKind: Declared type of a field
- FieldDef: Individual field within an entity type
- IdStrategy: How record IDs are generated
- EntityTypeDef: Definition of an entity type

Invariants:
    - Field names are unique within an entity type
    - "id" is reserved for the system-assigned record ID
    - JSON fields cannot be indexed (their values have no ordering)
    - Definitions are frozen; a registered schema never changes

How to change safely:
    - Register a new entity type rather than mutating an existing one
    - New field kinds need a validator, a coercion rule and an ordering

Example:
    >>> from entstore_server.schema.types import EntityTypeDef, field
    >>> Product = EntityTypeDef(
    ...     name="product",
    ...     fields=(
    ...         field("name", "string", required=True, indexed=True),
    ...         field("price", "float", required=True, indexed=True),
    ...     ),
    ... )
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime, timezone
from difflib import get_close_matches
from enum import Enum
from typing import Any

ID_FIELD = "id"


class FieldKind(Enum):
    """Supported field types in the schema.

    These map to validation rules, coercion and index ordering.
    """

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"  # timezone-aware UTC datetime
    JSON = "json"  # Arbitrary JSON-compatible value

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Args:
            value: String name of the field kind

        Returns:
            Corresponding FieldKind enum value

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")


class IdStrategy(Enum):
    """ID generation strategy of an entity type."""

    AUTO_INCREMENT = "auto_increment"
    UUID = "uuid"


def parse_datetime(value: Any) -> datetime | None:
    """Normalize a datetime or ISO-8601 string to an aware UTC datetime.

    Returns None when the value cannot be interpreted as a datetime.
    Naive datetimes are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, int, float, bool)):
        return True
    if isinstance(value, (list, tuple)):
        return all(_is_json_value(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in value.items())
    return False


_VALIDATORS = {
    FieldKind.STRING: lambda v: isinstance(v, str),
    FieldKind.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
    FieldKind.FLOAT: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    FieldKind.BOOLEAN: lambda v: isinstance(v, bool),
    FieldKind.DATETIME: lambda v: parse_datetime(v) is not None,
    FieldKind.JSON: _is_json_value,
}


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single field within an entity type.

    Attributes:
        name: Field name, unique within the containing type
        kind: The data type of the field
        indexed: Whether to maintain a secondary index on this field
        required: Whether the field must hold a non-null value
        nullable: Whether null is an accepted value
        default: Value used when the field is absent on write
        description: Human-readable description

    Invariants:
        - A required field never stores null, whatever nullable says
        - Indexed fields have an ordering (every kind except json)

    Example:
        >>> price = FieldDef(name="price", kind=FieldKind.FLOAT, indexed=True, required=True)
    """

    name: str
    kind: FieldKind
    indexed: bool = False
    required: bool = False
    nullable: bool = True
    default: Any = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.name == ID_FIELD:
            raise ValueError(f"Field name '{ID_FIELD}' is reserved for the record ID")
        if self.indexed and self.kind == FieldKind.JSON:
            raise ValueError(f"JSON field '{self.name}' cannot be indexed")
        if self.default is not None:
            is_valid, error = self.validate_value(self.default)
            if not is_valid:
                raise ValueError(f"Invalid default for field '{self.name}': {error}")

    @property
    def accepts_null(self) -> bool:
        """Whether a null value passes validation."""
        return self.nullable and not self.required

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field definition.

        Args:
            value: The value to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if value is None:
            if self.required:
                return False, f"Field '{self.name}' is required"
            if not self.nullable:
                return False, f"Field '{self.name}' is not nullable"
            return True, None

        validator = _VALIDATORS[self.kind]
        if not validator(value):
            return (
                False,
                f"Field '{self.name}' has invalid type for kind {self.kind.value}, "
                f"got {type(value).__name__}",
            )
        if isinstance(value, float) and not math.isfinite(value):
            return False, f"Field '{self.name}' must be a finite number, got {value!r}"
        return True, None

    def coerce(self, value: Any) -> Any:
        """Normalize an already validated value to its stored form."""
        if value is None:
            return None
        if self.kind == FieldKind.DATETIME:
            return parse_datetime(value)
        if self.kind == FieldKind.JSON and isinstance(value, tuple):
            return list(value)
        return value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
        }
        if self.indexed:
            result["indexed"] = True
        if self.required:
            result["required"] = True
        if not self.nullable:
            result["nullable"] = False
        if self.default is not None:
            default = self.default
            if isinstance(default, datetime):
                default = default.isoformat()
            result["default"] = default
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["kind"]),
            indexed=data.get("indexed", False),
            required=data.get("required", False),
            nullable=data.get("nullable", True),
            default=data.get("default"),
            description=data.get("description", ""),
        )


def field(
    name: str,
    kind: str | FieldKind,
    *,
    indexed: bool = False,
    required: bool = False,
    nullable: bool = True,
    default: Any = None,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    This is the preferred way to define fields in schema definitions.

    Args:
        name: Field name
        kind: Field type (string or FieldKind enum)
        indexed: Whether to maintain an index
        required: Whether a non-null value is required
        nullable: Whether null is accepted
        default: Default value
        description: Human-readable description

    Returns:
        FieldDef instance

    Example:
        >>> stock = field("stock", "integer", indexed=True, required=True, default=0)
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        indexed=indexed,
        required=required,
        nullable=nullable,
        default=default,
        description=description,
    )


@dataclass(frozen=True)
class EntityTypeDef:
    """Definition of an entity type.

    Each record of the type has:
    - A system-assigned string ID (generated per id_strategy)
    - A value for every declared field (possibly null)

    Attributes:
        name: Entity type name, unique within a registry
        fields: Ordered tuple of field definitions
        id_strategy: How record IDs are generated
        description: Human-readable description

    Example:
        >>> Category = EntityTypeDef(
        ...     name="category",
        ...     fields=(
        ...         field("name", "string", required=True, indexed=True),
        ...         field("parentId", "string"),
        ...     ),
        ... )
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    id_strategy: IdStrategy = IdStrategy.AUTO_INCREMENT
    description: str = ""

    def __post_init__(self) -> None:
        """Validate entity type definition."""
        if not self.name:
            raise ValueError("Entity type name cannot be empty")

        field_names = [f.name for f in self.fields]
        if len(field_names) != len(set(field_names)):
            raise ValueError(f"Duplicate field name in entity type '{self.name}'")

    def get_field(self, name: str) -> FieldDef | None:
        """Get a field by name.

        Args:
            name: Field name

        Returns:
            FieldDef if found, None otherwise
        """
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        """Whether name is a declared field or the record ID."""
        return name == ID_FIELD or self.get_field(name) is not None

    def get_field_names(self) -> list[str]:
        """Get list of all field names."""
        return [f.name for f in self.fields]

    def get_required_fields(self) -> list[FieldDef]:
        """Get list of required fields."""
        return [f for f in self.fields if f.required]

    def get_indexed_fields(self) -> list[FieldDef]:
        """Get list of indexed fields."""
        return [f for f in self.fields if f.indexed]

    def suggest_fields(self, name: str) -> list[str]:
        """Suggest declared field names close to an unknown one."""
        return get_close_matches(name, [ID_FIELD, *self.get_field_names()], n=3)

    def apply_defaults(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Return a full payload with defaults filled in for absent fields."""
        full = dict(payload)
        for f in self.fields:
            if f.name not in full:
                full[f.name] = f.default
        return full

    def validate_payload(self, payload: dict[str, Any]) -> tuple[bool, list[str]]:
        """Validate a full payload against this entity type.

        Args:
            payload: Dictionary of field values (absent fields use defaults)

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors: list[str] = []

        known_names = set(self.get_field_names())
        for name in sorted(set(payload.keys()) - known_names):
            suggestions = get_close_matches(name, sorted(known_names), n=3)
            if suggestions:
                errors.append(f"Unknown field '{name}'. Did you mean: {suggestions}?")
            else:
                errors.append(f"Unknown field '{name}'")

        for f in self.fields:
            value = payload.get(f.name, f.default)
            is_valid, error = f.validate_value(value)
            if not is_valid and error:
                errors.append(error)

        return len(errors) == 0, errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "id_strategy": self.id_strategy.value,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityTypeDef:
        """Create from dictionary representation."""
        fields = tuple(FieldDef.from_dict(f) for f in data.get("fields", []))
        return cls(
            name=data["name"],
            fields=fields,
            id_strategy=IdStrategy(data.get("id_strategy", IdStrategy.AUTO_INCREMENT.value)),
            description=data.get("description", ""),
        )
