"""
Query engine for EntStore.

Evaluation of a query over one entity table:
1. Every predicate that an index can answer (eq/in on the record ID,
   eq/in/range on an indexed field) becomes a candidate ID set.
2. Candidate sets are intersected smallest first. Without any, every
   record of the table is a candidate.
3. The remaining predicates (non-indexed fields, contains, fuzzy) are
   tested against each candidate record.
4. Survivors are put in insertion order, then stable-sorted by the
   ordering field, then offset and limit are applied.

Without an explicit ordering, results follow the value order of the
first range predicate, else insertion order. Auto-increment IDs compare
numerically both in range predicates and in ordering.

Invariants:
    - Index use is an optimization only; a full scan gives the same
      records in the same order
    - Sorting is stable: ties keep insertion order
    - Evaluation reads the table only; callers hold its read lock
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable

from ..config import StoreConfig
from ..errors import InvalidQueryError
from ..schema.registry import SchemaRegistry
from ..schema.types import ID_FIELD, EntityTypeDef, FieldKind
from ..storage.record import Record
from ..storage.table import EntityTable
from .filters import Filter, FilterOp, matches, normalize_filter, resolve_field
from .fuzzy import FuzzyOptions

logger = logging.getLogger(__name__)


class SortDirection(Enum):
    """Ordering direction."""

    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: str | SortDirection) -> SortDirection:
        if isinstance(value, SortDirection):
            return value
        try:
            return cls(value.upper())
        except (ValueError, AttributeError):
            raise InvalidQueryError(f"Invalid sort direction '{value}'. Must be ASC or DESC")


@dataclass(frozen=True)
class Query:
    """A conjunctive filter query over one entity type.

    Attributes:
        entity_type: Entity type name
        filters: Predicates that must all hold
        order_by: Ordering field (None for the default ordering)
        direction: Ordering direction
        limit: Maximum number of results (None for no limit)
        offset: Number of leading results to skip
        fuzzy_options: Acceptance parameters for fuzzy filters
    """

    entity_type: str
    filters: tuple[Filter, ...] = field(default_factory=tuple)
    order_by: str | None = None
    direction: SortDirection = SortDirection.ASC
    limit: int | None = None
    offset: int = 0
    fuzzy_options: FuzzyOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "entity_type": self.entity_type,
            "filters": [f.to_dict() for f in self.filters],
            "direction": self.direction.value,
            "offset": self.offset,
        }
        if self.order_by is not None:
            result["order_by"] = self.order_by
        if self.limit is not None:
            result["limit"] = self.limit
        if self.fuzzy_options is not None:
            result["fuzzy"] = self.fuzzy_options.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any], entity_type: str | None = None) -> Query:
        """Build a query from its JSON form.

        Raises:
            InvalidQueryError: If the structure is malformed
        """
        entity_type = entity_type or data.get("entity_type")
        if not entity_type:
            raise InvalidQueryError("Query requires 'entity_type'")
        filters = data.get("filters", [])
        if not isinstance(filters, list):
            raise InvalidQueryError("'filters' must be a list")
        fuzzy = data.get("fuzzy")
        if fuzzy is not None and not isinstance(fuzzy, dict):
            raise InvalidQueryError("'fuzzy' must be an object")
        try:
            limit = data.get("limit")
            return cls(
                entity_type=entity_type,
                filters=tuple(Filter.from_dict(f) for f in filters),
                order_by=data.get("order_by"),
                direction=SortDirection.parse(data.get("direction", "ASC")),
                limit=int(limit) if limit is not None else None,
                offset=int(data.get("offset", 0)),
                fuzzy_options=FuzzyOptions.from_dict(fuzzy) if fuzzy else None,
            )
        except (TypeError, ValueError) as e:
            raise InvalidQueryError(f"Malformed query: {e}")


def numeric_id_key(record_id: str) -> tuple:
    """Sort key for auto-increment IDs: digits by value, then any other ID."""
    if record_id.isdigit():
        return (0, int(record_id))
    return (1, record_id)


def record_matches(
    table: EntityTable,
    record: Record,
    flt: Filter,
    fuzzy_options: FuzzyOptions | None = None,
) -> bool:
    """Evaluate a normalized filter against one stored record."""
    if flt.field == ID_FIELD and flt.op.is_range and table.numeric_ids:
        bound = Filter(ID_FIELD, flt.op, numeric_id_key(flt.value))
        return matches(numeric_id_key(record.id), bound)
    return matches(record.get(flt.field), flt, fuzzy_options)


@dataclass(frozen=True)
class Selection:
    """IDs surviving the filters, in insertion order."""

    ids: list[str]
    default_order_field: str | None = None


class QueryEngine:
    """Validates and evaluates queries against entity tables.

    Example:
        >>> engine = QueryEngine(registry, StoreConfig())
        >>> prepared = engine.prepare(Query("product", (gte("price", 20.0),)))
        >>> engine.execute(table, prepared)
    """

    def __init__(self, registry: SchemaRegistry, config: StoreConfig | None = None) -> None:
        self.registry = registry
        self.config = config or StoreConfig()

    def default_fuzzy_options(self) -> FuzzyOptions:
        return FuzzyOptions(
            threshold=self.config.fuzzy_threshold,
            max_distance=self.config.fuzzy_max_distance,
        )

    def normalize_filters(
        self, entity_type: EntityTypeDef, filters: Iterable[Filter]
    ) -> tuple[Filter, ...]:
        return tuple(normalize_filter(entity_type, f) for f in filters)

    def prepare(self, query: Query, paginate: bool = True) -> Query:
        """Validate a query and return it with coerced filter values.

        Raises:
            UnknownEntityTypeError: If the entity type is not registered
            InvalidFieldError: If a filter or the ordering names an undeclared field
            InvalidQueryError: If paging or filter values are invalid
        """
        entity_type = self.registry.require_entity_type(query.entity_type)

        if query.offset < 0:
            raise InvalidQueryError(f"offset must be >= 0, got {query.offset}")
        if query.limit is not None:
            if query.limit < 0:
                raise InvalidQueryError(f"limit must be >= 0, got {query.limit}")
            if paginate and query.limit > self.config.max_query_limit:
                raise InvalidQueryError(
                    f"limit must be <= {self.config.max_query_limit}, got {query.limit}"
                )

        if query.order_by is not None:
            order_field = resolve_field(entity_type, query.order_by)
            if order_field.kind == FieldKind.JSON:
                raise InvalidQueryError(
                    f"Cannot order by JSON field '{query.order_by}'", field_name=query.order_by
                )

        return replace(
            query,
            filters=self.normalize_filters(entity_type, query.filters),
            direction=SortDirection.parse(query.direction),
            fuzzy_options=query.fuzzy_options or self.default_fuzzy_options(),
        )

    def select(
        self,
        table: EntityTable,
        filters: Iterable[Filter],
        fuzzy_options: FuzzyOptions | None = None,
    ) -> Selection:
        """Apply normalized filters to a table.

        Returns:
            Selection with surviving IDs in insertion order
        """
        indexes = table.indexes
        candidate_sets: list[set[str]] = []
        residual: list[Filter] = []
        default_order_field: str | None = None

        for flt in filters:
            if flt.op.is_range and default_order_field is None:
                default_order_field = flt.field

            if flt.field == ID_FIELD and flt.op == FilterOp.EQ:
                found = flt.value is not None and flt.value in table.records
                candidate_sets.append({flt.value} if found else set())
            elif flt.field == ID_FIELD and flt.op == FilterOp.IN:
                candidate_sets.append({v for v in flt.value if v in table.records})
            elif indexes.is_indexed(flt.field) and flt.op == FilterOp.EQ:
                candidate_sets.append(indexes.lookup_eq(flt.field, flt.value))
            elif indexes.is_indexed(flt.field) and flt.op == FilterOp.IN:
                candidate_sets.append(indexes.lookup_in(flt.field, flt.value))
            elif indexes.is_indexed(flt.field) and flt.op.is_range:
                candidate_sets.append(set(self._range_lookup(table, flt)))
            else:
                residual.append(flt)

        if candidate_sets:
            candidate_sets.sort(key=len)
            ids = set(candidate_sets[0])
            for candidates in candidate_sets[1:]:
                if not ids:
                    break
                ids &= candidates
        else:
            ids = set(table.records)

        if residual:
            records = table.records
            ids = {
                record_id
                for record_id in ids
                if all(
                    record_matches(table, records[record_id], f, fuzzy_options)
                    for f in residual
                )
            }

        return Selection(
            ids=table.in_insertion_order(ids), default_order_field=default_order_field
        )

    @staticmethod
    def _range_lookup(table: EntityTable, flt: Filter) -> list[str]:
        if flt.op in (FilterOp.GT, FilterOp.GTE):
            return table.indexes.lookup_range(
                flt.field, lower=flt.value, include_lower=flt.op == FilterOp.GTE
            )
        return table.indexes.lookup_range(
            flt.field, upper=flt.value, include_upper=flt.op == FilterOp.LTE
        )

    def order(
        self,
        table: EntityTable,
        ids: list[str],
        order_by: str | None,
        direction: SortDirection = SortDirection.ASC,
    ) -> list[str]:
        """Stable-sort IDs (given in insertion order) by a field.

        Nulls sort first ascending and last descending.
        """
        if order_by is None:
            return ids
        records = table.records
        numeric_ids = order_by == ID_FIELD and table.numeric_ids

        def sort_key(record_id: str) -> tuple:
            if numeric_ids:
                return (1, numeric_id_key(record_id))
            value = records[record_id].get(order_by)
            if value is None:
                return (0,)
            return (1, value)

        return sorted(ids, key=sort_key, reverse=direction == SortDirection.DESC)

    def execute_ids(self, table: EntityTable, query: Query, paginate: bool = True) -> list[str]:
        """Evaluate a prepared query to an ordered ID list."""
        selection = self.select(table, query.filters, query.fuzzy_options)
        if query.order_by is not None:
            ids = self.order(table, selection.ids, query.order_by, query.direction)
        else:
            ids = self.order(table, selection.ids, selection.default_order_field)

        if not paginate:
            return ids
        return paginate_list(ids, query.offset, query.limit)

    def execute(self, table: EntityTable, query: Query, paginate: bool = True) -> list[Record]:
        """Evaluate a prepared query to copies of the matching records."""
        ids = self.execute_ids(table, query, paginate)
        records = table.records
        logger.debug(
            "Executed query",
            extra={
                "entity_type": query.entity_type,
                "filters": len(query.filters),
                "results": len(ids),
            },
        )
        return [records[record_id].copy() for record_id in ids]

    def count(self, table: EntityTable, query: Query) -> int:
        return len(self.select(table, query.filters, query.fuzzy_options).ids)


def paginate_list(items: list, offset: int = 0, limit: int | None = None) -> list:
    """Apply offset, then limit."""
    if limit is None:
        return items[offset:]
    return items[offset : offset + limit]
