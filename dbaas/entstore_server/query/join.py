"""
Join engine for EntStore.

A join attaches, to each record of a primary result set, the records of
a target entity type whose foreign field equals the primary record's
local field. Join-level filters constrain the target records before they
are attached.

Execution of a JoinQuery:
1. The primary query is filtered and ordered, without pagination.
2. Joins apply left to right. Each join reads the primary records' own
   fields, unless its local field is chained as "<alias>.<field>", in
   which case the values come from the records an earlier join attached
   under that alias.
3. INNER joins drop primary records without a match; LEFT joins keep
   them with an empty list.
4. Offset and limit apply to the joined result.

Target lookups use the index of the foreign field (or the record ID map)
when one exists. Otherwise the target table is filtered once by the join
filters and hashed by foreign value.

Invariants:
    - An INNER join never returns a primary record without a match
    - Null local values never match anything
    - Each type's read lock is taken on its own, never nested
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ContextManager, Iterable

from ..errors import InvalidJoinError, InvalidQueryError
from ..schema.registry import SchemaRegistry
from ..schema.types import ID_FIELD, EntityTypeDef, FieldKind
from ..storage.record import Record
from ..storage.table import EntityTable
from .engine import Query, QueryEngine, paginate_list, record_matches
from .filters import Filter, resolve_field

logger = logging.getLogger(__name__)


class JoinType(Enum):
    """Join semantics."""

    INNER = "inner"
    LEFT = "left"

    @classmethod
    def parse(cls, value: str | JoinType) -> JoinType:
        if isinstance(value, JoinType):
            return value
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            raise InvalidJoinError(f"Invalid join type '{value}'. Must be inner or left")


@dataclass(frozen=True)
class JoinSpec:
    """One join of a JoinQuery.

    Attributes:
        entity_type: Target entity type name
        local_field: Primary field (or "<alias>.<field>" to chain)
        foreign_field: Target field compared with the local value
        alias: Name under which matches are attached
        join_type: INNER or LEFT
        filters: Predicates on the target records
    """

    entity_type: str
    local_field: str
    foreign_field: str
    alias: str
    join_type: JoinType = JoinType.INNER
    filters: tuple[Filter, ...] = field(default_factory=tuple)

    @property
    def chained_alias(self) -> str | None:
        if "." in self.local_field:
            return self.local_field.split(".", 1)[0]
        return None

    @property
    def local_name(self) -> str:
        return self.local_field.split(".", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "local_field": self.local_field,
            "foreign_field": self.foreign_field,
            "alias": self.alias,
            "join_type": self.join_type.value,
            "filters": [f.to_dict() for f in self.filters],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JoinSpec:
        """Build a join from its JSON form.

        Raises:
            InvalidJoinError: If the structure is malformed
        """
        if not isinstance(data, dict):
            raise InvalidJoinError(f"Join must be an object, got {type(data).__name__}")
        filters = data.get("filters", [])
        if not isinstance(filters, list):
            raise InvalidJoinError("Join 'filters' must be a list")
        missing = [
            k
            for k in ("entity_type", "local_field", "foreign_field")
            if not data.get(k) or not isinstance(data[k], str)
        ]
        if missing:
            raise InvalidJoinError(f"Join requires string values for {missing}")
        alias = data.get("alias") or data.get("as") or data["entity_type"]
        return cls(
            entity_type=data["entity_type"],
            local_field=data["local_field"],
            foreign_field=data["foreign_field"],
            alias=alias,
            join_type=JoinType.parse(data.get("join_type", "inner")),
            filters=tuple(Filter.from_dict(f) for f in filters),
        )


@dataclass(frozen=True)
class JoinQuery:
    """A primary query plus joins applied left to right."""

    query: Query
    joins: tuple[JoinSpec, ...] = field(default_factory=tuple)

    @property
    def entity_type(self) -> str:
        return self.query.entity_type

    def to_dict(self) -> dict[str, Any]:
        result = self.query.to_dict()
        result["joins"] = [j.to_dict() for j in self.joins]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any], entity_type: str | None = None) -> JoinQuery:
        joins = data.get("joins", [])
        if not isinstance(joins, list):
            raise InvalidQueryError("'joins' must be a list")
        return cls(
            query=Query.from_dict(data, entity_type),
            joins=tuple(JoinSpec.from_dict(j) for j in joins),
        )


@dataclass
class JoinedRecord:
    """A primary record with its attached join results.

    Attributes:
        record: The primary record
        joined: Attached target records per alias
    """

    record: Record
    joined: dict[str, list[Record]] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.record.id

    def __getitem__(self, name: str) -> Any:
        if name in self.joined:
            return self.joined[name]
        return self.record[name]

    def get(self, name: str, default: Any = None) -> Any:
        if name in self.joined:
            return self.joined[name]
        return self.record.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        result = self.record.to_dict()
        for alias, records in self.joined.items():
            result[alias] = [r.to_dict() for r in records]
        return result


_NUMERIC_KINDS = (FieldKind.INTEGER, FieldKind.FLOAT)


def _comparable(local: FieldKind, foreign: FieldKind) -> bool:
    return local == foreign or (local in _NUMERIC_KINDS and foreign in _NUMERIC_KINDS)


TableReader = Callable[[str], ContextManager[EntityTable]]


class JoinEngine:
    """Validates and evaluates join queries.

    The engine receives a table reader: a callable returning a context
    manager that holds an entity type's read lock and yields its table.
    """

    def __init__(self, registry: SchemaRegistry, query_engine: QueryEngine) -> None:
        self.registry = registry
        self.query_engine = query_engine

    def prepare(self, join_query: JoinQuery) -> JoinQuery:
        """Validate the primary query and every join.

        Raises:
            InvalidJoinError: Unregistered types, bad aliases or JSON join fields
            InvalidFieldError: Undeclared local, foreign or filter fields
            InvalidQueryError: Invalid paging or filter values
        """
        primary_def = self.registry.get_entity_type(join_query.entity_type)
        if primary_def is None:
            raise InvalidJoinError(
                f"Primary entity type '{join_query.entity_type}' is not registered"
            )
        query = self.query_engine.prepare(join_query.query)

        alias_types: dict[str, EntityTypeDef] = {}
        prepared: list[JoinSpec] = []
        for spec in join_query.joins:
            target_def = self.registry.get_entity_type(spec.entity_type)
            if target_def is None:
                raise InvalidJoinError(
                    f"Join target entity type '{spec.entity_type}' is not registered",
                    alias=spec.alias,
                )
            if spec.alias in alias_types:
                raise InvalidJoinError(f"Duplicate join alias '{spec.alias}'", alias=spec.alias)
            if primary_def.has_field(spec.alias):
                raise InvalidJoinError(
                    f"Join alias '{spec.alias}' collides with a field of "
                    f"'{primary_def.name}'",
                    alias=spec.alias,
                )

            source_def = primary_def
            chained = spec.chained_alias
            if chained is not None:
                if chained not in alias_types:
                    raise InvalidJoinError(
                        f"Join '{spec.alias}' chains from unknown alias '{chained}'",
                        alias=spec.alias,
                    )
                source_def = alias_types[chained]

            local_def = resolve_field(source_def, spec.local_name)
            foreign_def = resolve_field(target_def, spec.foreign_field)
            if FieldKind.JSON in (local_def.kind, foreign_def.kind):
                raise InvalidJoinError(
                    f"Join '{spec.alias}' cannot compare JSON fields", alias=spec.alias
                )
            if not _comparable(local_def.kind, foreign_def.kind):
                raise InvalidJoinError(
                    f"Join '{spec.alias}' compares {local_def.kind.value} "
                    f"'{spec.local_field}' with {foreign_def.kind.value} "
                    f"'{spec.foreign_field}'",
                    alias=spec.alias,
                )

            alias_types[spec.alias] = target_def
            prepared.append(
                JoinSpec(
                    entity_type=spec.entity_type,
                    local_field=spec.local_field,
                    foreign_field=spec.foreign_field,
                    alias=spec.alias,
                    join_type=JoinType.parse(spec.join_type),
                    filters=self.query_engine.normalize_filters(target_def, spec.filters),
                )
            )

        return JoinQuery(query=query, joins=tuple(prepared))

    def execute(self, join_query: JoinQuery, read_table: TableReader) -> list[JoinedRecord]:
        """Evaluate a prepared join query."""
        query = join_query.query
        with read_table(query.entity_type) as table:
            primaries = [
                JoinedRecord(record=r)
                for r in self.query_engine.execute(table, query, paginate=False)
            ]

        for spec in join_query.joins:
            if not primaries:
                break
            primaries = self._apply_join(primaries, spec, query, read_table)

        result = paginate_list(primaries, query.offset, query.limit)
        logger.debug(
            "Executed join query",
            extra={
                "entity_type": query.entity_type,
                "joins": [j.alias for j in join_query.joins],
                "results": len(result),
            },
        )
        return result

    def _local_values(self, joined: JoinedRecord, spec: JoinSpec) -> list[Any]:
        chained = spec.chained_alias
        if chained is None:
            value = joined.record.get(spec.local_name)
            return [] if value is None else [value]
        values: list[Any] = []
        for attached in joined.joined.get(chained, []):
            value = attached.get(spec.local_name)
            if value is not None and value not in values:
                values.append(value)
        return values

    def _apply_join(
        self,
        primaries: list[JoinedRecord],
        spec: JoinSpec,
        query: Query,
        read_table: TableReader,
    ) -> list[JoinedRecord]:
        local_values = [self._local_values(p, spec) for p in primaries]
        needed: set[Any] = set()
        for values in local_values:
            needed.update(values)

        with read_table(spec.entity_type) as table:
            matches_by_value = self._lookup(table, spec, needed, query)

        result: list[JoinedRecord] = []
        for joined, values in zip(primaries, local_values):
            attached: list[Record] = []
            seen: set[str] = set()
            for value in values:
                for record in matches_by_value.get(value, ()):
                    if record.id not in seen:
                        seen.add(record.id)
                        attached.append(record)
            if not attached and spec.join_type == JoinType.INNER:
                continue
            joined.joined[spec.alias] = [r.copy() for r in attached]
            result.append(joined)
        return result

    def _lookup(
        self,
        table: EntityTable,
        spec: JoinSpec,
        needed: Iterable[Any],
        query: Query,
    ) -> dict[Any, list[Record]]:
        """Target records grouped by foreign value, each group in insertion order."""
        fuzzy_options = query.fuzzy_options
        records = table.records
        grouped: dict[Any, list[Record]] = {}

        if spec.foreign_field == ID_FIELD or table.indexes.is_indexed(spec.foreign_field):
            for value in needed:
                if spec.foreign_field == ID_FIELD:
                    ids = {value} if value in records else set()
                else:
                    ids = table.indexes.lookup_eq(spec.foreign_field, value)
                ordered = table.in_insertion_order(ids)
                group = [
                    records[record_id]
                    for record_id in ordered
                    if all(
                        record_matches(table, records[record_id], f, fuzzy_options)
                        for f in spec.filters
                    )
                ]
                if group:
                    grouped[value] = group
            return grouped

        needed_set = set(needed)
        selection = self.query_engine.select(table, spec.filters, fuzzy_options)
        for record_id in selection.ids:
            record = records[record_id]
            value = record.get(spec.foreign_field)
            if value is not None and value in needed_set:
                grouped.setdefault(value, []).append(record)
        return grouped
