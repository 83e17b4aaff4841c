"""
Entity store: the storage engine of EntStore.

The EntityStore owns one EntityTable per registered entity type and is
the only component that mutates records or indexes. Query and join
evaluation is delegated to the QueryEngine and JoinEngine, which read
tables under the owning type's read lock.

Write path (create, update, patch):
1. Apply field defaults to the payload
2. Validate against the entity type (ValidationError lists every problem)
3. Coerce values to their stored form (datetimes to aware UTC)
4. Under the type's write lock: assign or check the ID, store the
   record and update every index

Invariants:
    - Validation completes before any state changes; a failed write
      leaves records, indexes and ID counters untouched
    - Records returned to callers are copies
    - The store never cascades deletes to other entity types

How to change safely:
    - Keep every index update inside the write lock of the owning type
    - Never hold two types' locks at once; joins read one type at a time
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Iterable

from .config import StoreConfig
from .errors import DuplicateError, NotFoundError, ValidationError
from .query.engine import Query, QueryEngine
from .query.filters import Filter
from .query.fuzzy import FuzzyOptions
from .query.join import JoinedRecord, JoinEngine, JoinQuery
from .schema.registry import SchemaRegistry
from .schema.types import EntityTypeDef
from .storage.locks import LockTable
from .storage.record import Record
from .storage.table import EntityTable

logger = logging.getLogger(__name__)


class EntityStore:
    """In-memory store of records for the types of a SchemaRegistry.

    Thread-safety:
        - Each entity type has its own reader/writer lock
        - Writes to different types proceed in parallel
        - There are no transactions spanning several types

    Example:
        >>> store = EntityStore(registry)
        >>> desk = store.create("product", {"name": "Desk", "price": 120.0})
        >>> store.get_by_id("product", desk.id)["name"]
        'Desk'
    """

    def __init__(self, registry: SchemaRegistry, config: StoreConfig | None = None) -> None:
        self.registry = registry
        self.config = config or StoreConfig()
        self.query_engine = QueryEngine(registry, self.config)
        self.join_engine = JoinEngine(registry, self.query_engine)
        self._tables: dict[str, EntityTable] = {}
        self._tables_guard = threading.Lock()
        self._locks = LockTable()

    # ── tables and locks ─────────────────────────────────────────────

    def _table(self, entity_type: str) -> EntityTable:
        definition = self.registry.require_entity_type(entity_type)
        with self._tables_guard:
            table = self._tables.get(entity_type)
            if table is None:
                table = EntityTable(definition)
                self._tables[entity_type] = table
            return table

    @contextmanager
    def _reading(self, entity_type: str) -> Iterator[EntityTable]:
        table = self._table(entity_type)
        with self._locks.read(entity_type):
            yield table

    @contextmanager
    def _writing(self, entity_type: str) -> Iterator[EntityTable]:
        table = self._table(entity_type)
        with self._locks.write(entity_type):
            yield table

    # ── validation ───────────────────────────────────────────────────

    @staticmethod
    def _prepare_fields(definition: EntityTypeDef, fields: dict[str, Any]) -> dict[str, Any]:
        """Validate a payload and return every declared field in stored form.

        Raises:
            ValidationError: If the payload violates the schema
        """
        if not isinstance(fields, dict):
            raise ValidationError(
                f"Record fields for '{definition.name}' must be a mapping",
                entity_type=definition.name,
                errors=[f"Expected a mapping, got {type(fields).__name__}"],
            )
        payload = definition.apply_defaults(fields)
        is_valid, errors = definition.validate_payload(payload)
        if not is_valid:
            raise ValidationError(
                f"Invalid '{definition.name}' record: {'; '.join(errors)}",
                entity_type=definition.name,
                errors=errors,
            )
        return {f.name: f.coerce(copy.deepcopy(payload[f.name])) for f in definition.fields}

    @staticmethod
    def _not_found(entity_type: str, record_id: str) -> NotFoundError:
        return NotFoundError(
            f"Record '{record_id}' not found in '{entity_type}'", entity_type, record_id
        )

    # ── CRUD ─────────────────────────────────────────────────────────

    def create(
        self,
        entity_type: str,
        fields: dict[str, Any],
        record_id: str | None = None,
    ) -> Record:
        """Create a record.

        Args:
            entity_type: Registered entity type name
            fields: Field values; absent fields take their defaults
            record_id: Explicit ID (generated from the type's strategy if None)

        Returns:
            Copy of the stored record

        Raises:
            UnknownEntityTypeError: If the type is not registered
            ValidationError: If the payload violates the schema
            DuplicateError: If record_id is already taken
        """
        table = self._table(entity_type)
        values = self._prepare_fields(table.definition, fields)
        if record_id is not None and (not isinstance(record_id, str) or not record_id):
            raise ValidationError(
                f"Explicit record ID for '{entity_type}' must be a non-empty string",
                entity_type=entity_type,
                errors=[f"Invalid record ID {record_id!r}"],
            )

        with self._locks.write(entity_type):
            if record_id is None:
                record_id = table.id_generator.next_id()
                while record_id in table.records:
                    record_id = table.id_generator.next_id()
            elif record_id in table.records:
                raise DuplicateError(entity_type, record_id)
            else:
                table.id_generator.observe(record_id)

            record = Record(entity_type=entity_type, id=record_id, fields=values)
            table.insert(record)

        logger.debug(
            "Created record",
            extra={"entity_type": entity_type, "record_id": record_id},
        )
        return record.copy()

    def get_by_id(self, entity_type: str, record_id: str) -> Record:
        """Fetch a record.

        Raises:
            UnknownEntityTypeError: If the type is not registered
            NotFoundError: If no record has this ID
        """
        with self._reading(entity_type) as table:
            record = table.records.get(record_id)
            if record is None:
                raise self._not_found(entity_type, record_id)
            return record.copy()

    def update(self, entity_type: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Replace every field of a record.

        Fields absent from the payload fall back to their defaults.

        Raises:
            NotFoundError: If no record has this ID
            ValidationError: If the payload violates the schema
        """
        table = self._table(entity_type)
        values = self._prepare_fields(table.definition, fields)

        with self._locks.write(entity_type):
            if record_id not in table.records:
                raise self._not_found(entity_type, record_id)
            record = Record(entity_type=entity_type, id=record_id, fields=values)
            table.replace(record)

        logger.debug(
            "Updated record",
            extra={"entity_type": entity_type, "record_id": record_id},
        )
        return record.copy()

    def patch(self, entity_type: str, record_id: str, changes: dict[str, Any]) -> Record:
        """Change some fields of a record, keeping the others.

        Raises:
            NotFoundError: If no record has this ID
            ValidationError: If the merged record violates the schema
        """
        table = self._table(entity_type)
        if not isinstance(changes, dict):
            raise ValidationError(
                f"Record changes for '{entity_type}' must be a mapping",
                entity_type=entity_type,
                errors=[f"Expected a mapping, got {type(changes).__name__}"],
            )

        with self._locks.write(entity_type):
            current = table.records.get(record_id)
            if current is None:
                raise self._not_found(entity_type, record_id)
            values = self._prepare_fields(table.definition, {**current.fields, **changes})
            record = Record(entity_type=entity_type, id=record_id, fields=values)
            table.replace(record)

        logger.debug(
            "Patched record",
            extra={
                "entity_type": entity_type,
                "record_id": record_id,
                "changed_fields": sorted(changes),
            },
        )
        return record.copy()

    def delete(self, entity_type: str, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if the record existed, False otherwise

        Raises:
            UnknownEntityTypeError: If the type is not registered
        """
        with self._writing(entity_type) as table:
            removed = table.remove(record_id)

        if removed is None:
            return False
        logger.debug(
            "Deleted record",
            extra={"entity_type": entity_type, "record_id": record_id},
        )
        return True

    def find_all(self, entity_type: str) -> list[Record]:
        """All records of a type in insertion order."""
        with self._reading(entity_type) as table:
            return [record.copy() for record in table.records.values()]

    # ── queries ──────────────────────────────────────────────────────

    def count(
        self,
        entity_type: str,
        filters: Iterable[Filter] = (),
        fuzzy_options: FuzzyOptions | None = None,
    ) -> int:
        """Number of records matching every filter."""
        query = self.query_engine.prepare(
            Query(entity_type=entity_type, filters=tuple(filters), fuzzy_options=fuzzy_options)
        )
        with self._reading(entity_type) as table:
            return self.query_engine.count(table, query)

    def query(self, query: Query) -> list[Record]:
        """Evaluate a filter query.

        Raises:
            UnknownEntityTypeError: If the type is not registered
            InvalidFieldError: If a filter names an undeclared field
            InvalidQueryError: If paging or filter values are invalid
        """
        prepared = self.query_engine.prepare(query)
        with self._reading(query.entity_type) as table:
            return self.query_engine.execute(table, prepared)

    def join_query(self, join_query: JoinQuery) -> list[JoinedRecord]:
        """Evaluate a join query.

        Raises:
            InvalidJoinError: If a join is malformed
            InvalidFieldError: If a join or filter names an undeclared field
            InvalidQueryError: If paging or filter values are invalid
        """
        prepared = self.join_engine.prepare(join_query)
        return self.join_engine.execute(prepared, self._reading)

    def stats(self) -> dict[str, dict[str, Any]]:
        """Record count, ID strategy and indexed fields per registered type."""
        result: dict[str, dict[str, Any]] = {}
        for definition in self.registry.entity_types():
            with self._reading(definition.name) as table:
                count = len(table)
            result[definition.name] = {
                "records": count,
                "id_strategy": definition.id_strategy.value,
                "indexed_fields": [f.name for f in definition.get_indexed_fields()],
            }
        return result
