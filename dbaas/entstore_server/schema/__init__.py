"""
Schema module for EntStore.

This module provides the type system for entities, including:
- Type definitions (EntityTypeDef, FieldDef, FieldKind, IdStrategy)
- Schema registry for type management

Invariants:
    - Entity type names are unique within a registry
    - Definitions are immutable once registered
    - "id" is reserved for the system-assigned record ID
"""

from .registry import SchemaRegistry
from .types import (
    ID_FIELD,
    EntityTypeDef,
    FieldDef,
    FieldKind,
    IdStrategy,
    field,
    parse_datetime,
)

__all__ = [
    # Types
    "ID_FIELD",
    "EntityTypeDef",
    "FieldDef",
    "FieldKind",
    "IdStrategy",
    "field",
    "parse_datetime",
    # Registry
    "SchemaRegistry",
]
