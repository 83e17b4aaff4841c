"""
Fluent query builders for the EntStore SDK.

This module provides:
- QueryBuilder: chainable filters, ordering, paging and fuzzy options
- JoinQueryBuilder: QueryBuilder plus INNER/LEFT joins and join filters

Builders only assemble Query / JoinQuery values; validation happens in
the store when the query runs.

Example:
    >>> products = (
    ...     QueryBuilder(store, "product")
    ...     .gte("price", 20.0)
    ...     .eq("isActive", True)
    ...     .order_by("price", "DESC")
    ...     .limit(10)
    ...     .get_result()
    ... )
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable

from dbaas.entstore_server.errors import InvalidJoinError, InvalidQueryError
from dbaas.entstore_server.query import (
    Filter,
    FilterOp,
    FuzzyOptions,
    JoinedRecord,
    JoinQuery,
    JoinSpec,
    JoinType,
    Query,
    SortDirection,
)
from dbaas.entstore_server.storage import Record
from dbaas.entstore_server.store import EntityStore


class QueryBuilder:
    """Chainable builder for a filter query on one entity type."""

    def __init__(self, store: EntityStore, entity_type: str) -> None:
        self._store = store
        self._entity_type = entity_type
        self._filters: list[Filter] = []
        self._order_by: str | None = None
        self._direction = SortDirection.ASC
        self._limit: int | None = None
        self._offset = 0
        self._fuzzy_options: FuzzyOptions | None = None

    @property
    def entity_type(self) -> str:
        return self._entity_type

    def where(self, field: str, op: str | FilterOp, value: Any) -> QueryBuilder:
        """Add a filter with an explicit operator."""
        if isinstance(op, str):
            try:
                op = FilterOp(op)
            except ValueError:
                raise InvalidQueryError(f"Invalid filter op '{op}'")
        if op == FilterOp.IN:
            value = tuple(value)
        self._filters.append(Filter(field, op, value))
        return self

    def eq(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.EQ, value)

    def gt(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.GT, value)

    def gte(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.GTE, value)

    def lt(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.LT, value)

    def lte(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.LTE, value)

    def in_(self, field: str, values: Iterable[Any]) -> QueryBuilder:
        return self.where(field, FilterOp.IN, values)

    def contains(self, field: str, value: Any) -> QueryBuilder:
        return self.where(field, FilterOp.CONTAINS, value)

    def fuzzy(self, field: str, value: str) -> QueryBuilder:
        return self.where(field, FilterOp.FUZZY, value)

    def order_by(self, field: str, direction: str | SortDirection = "ASC") -> QueryBuilder:
        self._order_by = field
        self._direction = SortDirection.parse(direction)
        return self

    def limit(self, limit: int | None) -> QueryBuilder:
        self._limit = limit
        return self

    def offset(self, offset: int) -> QueryBuilder:
        self._offset = offset
        return self

    def set_fuzzy_options(self, threshold: float = 0.7, max_distance: int = 3) -> QueryBuilder:
        self._fuzzy_options = FuzzyOptions(threshold=threshold, max_distance=max_distance)
        return self

    def build(self) -> Query:
        return Query(
            entity_type=self._entity_type,
            filters=tuple(self._filters),
            order_by=self._order_by,
            direction=self._direction,
            limit=self._limit,
            offset=self._offset,
            fuzzy_options=self._fuzzy_options,
        )

    def get_result(self) -> list[Record]:
        return self._store.query(self.build())

    def get_one(self) -> Record | None:
        """First matching record, or None."""
        records = self._store.query(replace(self.build(), limit=1))
        return records[0] if records else None

    def count(self) -> int:
        """Number of matching records, ignoring limit and offset."""
        return self._store.count(self._entity_type, self._filters, self._fuzzy_options)


class JoinQueryBuilder(QueryBuilder):
    """QueryBuilder that also attaches related records.

    Join filters added with add_join_filter() apply to the most recently
    added join.

    Example:
        >>> categories = (
        ...     JoinQueryBuilder(store, "category")
        ...     .eq("isActive", True)
        ...     .inner_join("product", "id", "categoryId", "products")
        ...     .get_join_result()
        ... )
    """

    def __init__(self, store: EntityStore, entity_type: str) -> None:
        super().__init__(store, entity_type)
        self._joins: list[JoinSpec] = []

    def join(
        self,
        entity_type: str,
        local_field: str,
        foreign_field: str,
        alias: str | None = None,
        join_type: str | JoinType = JoinType.INNER,
    ) -> JoinQueryBuilder:
        self._joins.append(
            JoinSpec(
                entity_type=entity_type,
                local_field=local_field,
                foreign_field=foreign_field,
                alias=alias or entity_type,
                join_type=JoinType.parse(join_type),
            )
        )
        return self

    def inner_join(
        self,
        entity_type: str,
        local_field: str,
        foreign_field: str,
        alias: str | None = None,
    ) -> JoinQueryBuilder:
        return self.join(entity_type, local_field, foreign_field, alias, JoinType.INNER)

    def left_join(
        self,
        entity_type: str,
        local_field: str,
        foreign_field: str,
        alias: str | None = None,
    ) -> JoinQueryBuilder:
        return self.join(entity_type, local_field, foreign_field, alias, JoinType.LEFT)

    def add_join_filter(self, flt: Filter) -> JoinQueryBuilder:
        """Constrain the records of the most recent join.

        Raises:
            InvalidJoinError: If no join was added yet
        """
        if not self._joins:
            raise InvalidJoinError("add_join_filter() requires a preceding join")
        last = self._joins[-1]
        self._joins[-1] = replace(last, filters=(*last.filters, flt))
        return self

    def build_join(self) -> JoinQuery:
        return JoinQuery(query=self.build(), joins=tuple(self._joins))

    def get_join_result(self) -> list[JoinedRecord]:
        return self._store.join_query(self.build_join())

    def get_result(self) -> list[Record]:
        """Primary records of the joined result."""
        return [joined.record for joined in self.get_join_result()]

    def get_one(self) -> Record | None:
        joined = self._store.join_query(
            JoinQuery(query=replace(self.build(), limit=1), joins=tuple(self._joins))
        )
        return joined[0].record if joined else None

    def count(self) -> int:
        """Number of primary records surviving the joins, ignoring paging."""
        query = replace(self.build(), limit=None, offset=0)
        return len(self._store.join_query(JoinQuery(query=query, joins=tuple(self._joins))))
