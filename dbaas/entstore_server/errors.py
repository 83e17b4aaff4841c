"""
Error types for EntStore.

This module defines every exception raised by the store core:
- EntStoreError: Base exception
- ValidationError: Schema violation on write
- NotFoundError / UnknownEntityTypeError: Lookup misses
- DuplicateError: ID collision
- InvalidFieldError / InvalidQueryError / InvalidJoinError: Malformed queries
- SchemaError and its registry subclasses

Invariants:
    - All errors inherit from EntStoreError
    - Every error carries a stable code for programmatic handling
    - Errors are raised to the immediate caller; the core never retries
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class EntStoreError(Exception):
    """Base exception for all EntStore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ENTSTORE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body used by the HTTP API."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class ValidationError(EntStoreError):
    """Record payload violates its schema.

    Raised when:
    - Required field is missing or null
    - Non-nullable field is null
    - Field value has wrong type
    - Payload contains unknown fields
    """

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"entity_type": entity_type, "errors": errors or []},
        )
        self.entity_type = entity_type
        self.errors = errors or []


class NotFoundError(EntStoreError):
    """Record not found.

    Raised by get_by_id, update and patch. delete() reports a miss
    by returning False instead.
    """

    def __init__(
        self,
        message: str,
        entity_type: str,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"entity_type": entity_type, "record_id": record_id},
        )
        self.entity_type = entity_type
        self.record_id = record_id


class UnknownEntityTypeError(NotFoundError):
    """Entity type is not registered."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"Unknown entity type '{entity_type}'", entity_type)
        self.code = "UNKNOWN_ENTITY_TYPE"


class DuplicateError(EntStoreError):
    """A record with the same ID already exists."""

    def __init__(self, entity_type: str, record_id: str) -> None:
        super().__init__(
            f"Record '{record_id}' already exists in '{entity_type}'",
            code="DUPLICATE",
            details={"entity_type": entity_type, "record_id": record_id},
        )
        self.entity_type = entity_type
        self.record_id = record_id


class InvalidFieldError(EntStoreError):
    """A query, filter or join references an undeclared field.

    Includes suggestions for similar field names.
    """

    def __init__(
        self,
        field_name: str,
        entity_type: str,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' in entity type '{entity_type}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(
            msg,
            code="INVALID_FIELD",
            details={
                "field_name": field_name,
                "entity_type": entity_type,
                "suggestions": suggestions,
            },
        )
        self.field_name = field_name
        self.entity_type = entity_type
        self.suggestions = suggestions


class InvalidQueryError(EntStoreError):
    """Query is malformed (negative paging, bad filter value, unsupported operator)."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_QUERY", details={"field_name": field_name})
        self.field_name = field_name


class InvalidJoinError(EntStoreError):
    """Join specification is malformed or references an unregistered type."""

    def __init__(self, message: str, alias: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_JOIN", details={"alias": alias})
        self.alias = alias


class SchemaError(EntStoreError):
    """Schema registration or lookup failed."""

    def __init__(self, message: str, code: str = "SCHEMA_ERROR") -> None:
        super().__init__(message, code=code)


class DuplicateRegistrationError(SchemaError):
    """Raised when attempting to register an entity type name twice."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="DUPLICATE_REGISTRATION")


class RegistryFrozenError(SchemaError):
    """Raised when attempting to modify a frozen registry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REGISTRY_FROZEN")
