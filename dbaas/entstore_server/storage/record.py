"""
Record representation shared by the storage, query and join engines.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from ..schema.types import ID_FIELD


@dataclass
class Record:
    """One persisted instance of an entity type.

    Attributes:
        entity_type: Name of the owning entity type
        id: System-assigned ID, unique within the entity type
        fields: Field values keyed by field name (every declared field present)

    Example:
        >>> record = store.create("product", {"name": "Desk", "price": 120.0})
        >>> record["price"], record["id"]
        (120.0, '1')
    """

    entity_type: str
    id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        if name == ID_FIELD:
            return self.id
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value (or the ID) with a default for absent names."""
        if name == ID_FIELD:
            return self.id
        return self.fields.get(name, default)

    def copy(self) -> Record:
        """Deep copy, so callers never share mutable state with the store."""
        return Record(
            entity_type=self.entity_type,
            id=self.id,
            fields=copy.deepcopy(self.fields),
        )

    def to_dict(self) -> dict[str, Any]:
        """Flatten to {"id", "entityType", **fields}."""
        return {"id": self.id, "entityType": self.entity_type, **self.fields}
