"""
Schema Registry for EntStore.

The SchemaRegistry is the central authority for all entity type definitions.
It provides:
- Registration of entity types (the registerEntityType operation)
- Lookup by name
- Schema fingerprinting for consistency checks
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Entity type names are unique; registering a name twice fails
    - A registered definition never changes
    - Once frozen, no new types can be registered
    - Fingerprint changes when schema changes

Example:
    >>> from entstore_server.schema import SchemaRegistry, field
    >>> registry = SchemaRegistry()
    >>> registry.register("product", [field("price", "float", indexed=True)])
    >>> registry.get_entity_type("product")
    EntityTypeDef(name='product', ...)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterable, Iterator, Optional, Union

from ..errors import DuplicateRegistrationError, RegistryFrozenError, UnknownEntityTypeError
from .types import EntityTypeDef, FieldDef, IdStrategy

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Central registry for all entity type definitions.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups are lock-free dictionary reads
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the schema (computed on freeze)

    Example:
        >>> registry = SchemaRegistry()
        >>> registry.register_entity_type(Product)
        >>> registry.freeze()
        'sha256:abc123...'
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._entity_types: Dict[str, EntityTypeDef] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register_entity_type(self, entity_type: EntityTypeDef) -> EntityTypeDef:
        """Register an entity type definition.

        Args:
            entity_type: The entity type to register

        Returns:
            The registered definition

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the name is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register entity type '{entity_type.name}': registry is frozen"
                )

            if entity_type.name in self._entity_types:
                raise DuplicateRegistrationError(
                    f"Entity type name '{entity_type.name}' already registered"
                )

            self._entity_types[entity_type.name] = entity_type
            logger.debug(
                f"Registered entity type: {entity_type.name} "
                f"(fields={len(entity_type.fields)}, id_strategy={entity_type.id_strategy.value})"
            )
            return entity_type

    def register(
        self,
        name: str,
        fields: Iterable[FieldDef],
        id_strategy: Union[IdStrategy, str] = IdStrategy.AUTO_INCREMENT,
        description: str = "",
    ) -> EntityTypeDef:
        """Build and register an entity type from a field list.

        Args:
            name: Entity type name
            fields: Field definitions in declaration order
            id_strategy: ID generation strategy (enum or its value)
            description: Human-readable description

        Returns:
            The registered definition
        """
        if isinstance(id_strategy, str):
            id_strategy = IdStrategy(id_strategy)
        return self.register_entity_type(
            EntityTypeDef(
                name=name,
                fields=tuple(fields),
                id_strategy=id_strategy,
                description=description,
            )
        )

    def get_entity_type(self, name: str) -> Optional[EntityTypeDef]:
        """Get an entity type by name, or None if it is not registered."""
        return self._entity_types.get(name)

    def require_entity_type(self, name: str) -> EntityTypeDef:
        """Get an entity type by name.

        Raises:
            UnknownEntityTypeError: If the type is not registered
        """
        entity_type = self._entity_types.get(name)
        if entity_type is None:
            raise UnknownEntityTypeError(name)
        return entity_type

    def __contains__(self, name: object) -> bool:
        return name in self._entity_types

    def entity_types(self) -> Iterator[EntityTypeDef]:
        """Iterate over all registered entity types."""
        yield from list(self._entity_types.values())

    def freeze(self) -> str:
        """Freeze the registry and compute fingerprint.

        Returns:
            Schema fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema registry frozen with {len(self._entity_types)} entity types, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the canonical schema JSON."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation, sorted by name."""
        return {
            "entity_types": [
                self._entity_types[name].to_dict() for name in sorted(self._entity_types)
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Convert registry to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> SchemaRegistry:
        """Create registry from dictionary representation (not frozen)."""
        registry = cls()
        for type_data in data.get("entity_types", []):
            registry.register_entity_type(EntityTypeDef.from_dict(type_data))
        return registry

    @classmethod
    def from_json(cls, json_str: str) -> SchemaRegistry:
        """Create registry from JSON string (not frozen)."""
        return cls.from_dict(json.loads(json_str))
