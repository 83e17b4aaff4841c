"""
Repository base class for the EntStore SDK.

An EntityRepository binds an EntityStore to one entity type and offers
the usual finder methods plus query builders. Domain repositories
subclass it and add named queries.

Example:
    >>> products = EntityRepository(store, "product")
    >>> desk = products.create({"name": "Desk", "price": 120.0, ...})
    >>> products.find_by({"categoryId": "3"}, order_by="price", limit=10)
"""

from __future__ import annotations

from typing import Any

from dbaas.entstore_server.errors import NotFoundError
from dbaas.entstore_server.query import SortDirection, eq
from dbaas.entstore_server.storage import Record
from dbaas.entstore_server.store import EntityStore

from .builder import JoinQueryBuilder, QueryBuilder


class EntityRepository:
    """Finder and persistence methods for one entity type.

    Attributes:
        store: The backing EntityStore
        entity_type: Name of the managed entity type
    """

    def __init__(self, store: EntityStore, entity_type: str) -> None:
        # Fail fast on an unregistered type
        store.registry.require_entity_type(entity_type)
        self.store = store
        self.entity_type = entity_type

    def prepare(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Hook applied to the payload of create(); returns the payload to store."""
        return fields

    def create(self, fields: dict[str, Any], record_id: str | None = None) -> Record:
        return self.store.create(self.entity_type, self.prepare(dict(fields)), record_id)

    def find(self, record_id: str) -> Record | None:
        """Record with this ID, or None."""
        try:
            return self.store.get_by_id(self.entity_type, record_id)
        except NotFoundError:
            return None

    def get(self, record_id: str) -> Record:
        """Record with this ID.

        Raises:
            NotFoundError: If it does not exist
        """
        return self.store.get_by_id(self.entity_type, record_id)

    def update(self, record: Record) -> Record:
        """Persist every field of a (modified) record."""
        return self.store.update(self.entity_type, record.id, record.fields)

    def patch(self, record_id: str, changes: dict[str, Any]) -> Record:
        return self.store.patch(self.entity_type, record_id, changes)

    def delete(self, record: Record | str) -> bool:
        record_id = record.id if isinstance(record, Record) else record
        return self.store.delete(self.entity_type, record_id)

    def find_all(self) -> list[Record]:
        return self.store.find_all(self.entity_type)

    def find_by(
        self,
        criteria: dict[str, Any],
        order_by: str | None = None,
        direction: str | SortDirection = "ASC",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """Records whose fields equal every value in criteria."""
        builder = self.create_query_builder()
        for name, value in criteria.items():
            builder.eq(name, value)
        if order_by is not None:
            builder.order_by(order_by, direction)
        return builder.limit(limit).offset(offset).get_result()

    def find_one_by(self, criteria: dict[str, Any]) -> Record | None:
        records = self.find_by(criteria, limit=1)
        return records[0] if records else None

    def count(self, criteria: dict[str, Any] | None = None) -> int:
        filters = [eq(name, value) for name, value in (criteria or {}).items()]
        return self.store.count(self.entity_type, filters)

    def create_query_builder(self) -> QueryBuilder:
        return QueryBuilder(self.store, self.entity_type)

    def create_join_query_builder(self) -> JoinQueryBuilder:
        return JoinQueryBuilder(self.store, self.entity_type)
