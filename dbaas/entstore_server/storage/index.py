"""
Secondary indexes for EntStore.

Each indexed field of an entity type owns a FieldIndex: an ordered
mapping from field value to the set of record IDs holding that value.
Null values are kept in a separate bucket so equality lookups on null
work while range scans never see them.

Invariants:
    - After every successful write the indexes describe the current
      record set exactly: no stale IDs, no missing IDs
    - The sorted key list and the bucket dict always hold the same keys
    - Empty buckets are removed immediately

How to change safely:
    - Only the storage engine mutates indexes, under the type's write lock
    - Any new lookup must agree with a full scan for the same predicate
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right, insort
from typing import Any, Iterable

from ..schema.types import EntityTypeDef
from .record import Record


class FieldIndex:
    """Ordered value -> record ID set mapping for one field."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        self._buckets: dict[Any, set[str]] = {}
        self._keys: list[Any] = []
        self._nulls: set[str] = set()

    def add(self, value: Any, record_id: str) -> None:
        if value is None:
            self._nulls.add(record_id)
            return
        bucket = self._buckets.get(value)
        if bucket is None:
            bucket = set()
            self._buckets[value] = bucket
            insort(self._keys, value)
        bucket.add(record_id)

    def remove(self, value: Any, record_id: str) -> None:
        if value is None:
            self._nulls.discard(record_id)
            return
        bucket = self._buckets.get(value)
        if bucket is None:
            return
        bucket.discard(record_id)
        if not bucket:
            del self._buckets[value]
            pos = bisect_left(self._keys, value)
            if pos < len(self._keys) and self._keys[pos] == value:
                del self._keys[pos]

    def lookup_eq(self, value: Any) -> set[str]:
        if value is None:
            return set(self._nulls)
        return set(self._buckets.get(value, ()))

    def lookup_range(
        self,
        lower: Any = None,
        upper: Any = None,
        include_lower: bool = True,
        include_upper: bool = True,
    ) -> list[str]:
        """IDs whose value lies within the bounds, ordered by value.

        A None bound is open. Null values are never returned.
        """
        if lower is None:
            start = 0
        elif include_lower:
            start = bisect_left(self._keys, lower)
        else:
            start = bisect_right(self._keys, lower)

        if upper is None:
            stop = len(self._keys)
        elif include_upper:
            stop = bisect_right(self._keys, upper)
        else:
            stop = bisect_left(self._keys, upper)

        ids: list[str] = []
        for key in self._keys[start:stop]:
            ids.extend(sorted(self._buckets[key]))
        return ids

    def keys(self) -> list[Any]:
        return list(self._keys)

    def clear(self) -> None:
        self._buckets.clear()
        self._keys.clear()
        self._nulls.clear()

    def __len__(self) -> int:
        return sum(len(b) for b in self._buckets.values()) + len(self._nulls)


class IndexManager:
    """All secondary indexes of one entity type.

    Example:
        >>> indexes = IndexManager(product_def)
        >>> indexes.reindex(record)
        >>> indexes.lookup_range("price", lower=20.0)
        ['2', '3']
    """

    def __init__(self, entity_type: EntityTypeDef) -> None:
        self.entity_type = entity_type.name
        self._indexes: dict[str, FieldIndex] = {
            f.name: FieldIndex(f.name) for f in entity_type.get_indexed_fields()
        }

    @property
    def indexed_fields(self) -> list[str]:
        return list(self._indexes)

    def is_indexed(self, field_name: str) -> bool:
        return field_name in self._indexes

    def get(self, field_name: str) -> FieldIndex:
        return self._indexes[field_name]

    def lookup_eq(self, field_name: str, value: Any) -> set[str]:
        return self._indexes[field_name].lookup_eq(value)

    def lookup_in(self, field_name: str, values: Iterable[Any]) -> set[str]:
        index = self._indexes[field_name]
        ids: set[str] = set()
        for value in values:
            ids |= index.lookup_eq(value)
        return ids

    def lookup_range(
        self,
        field_name: str,
        lower: Any = None,
        upper: Any = None,
        include_lower: bool = True,
        include_upper: bool = True,
    ) -> list[str]:
        return self._indexes[field_name].lookup_range(lower, upper, include_lower, include_upper)

    def reindex(self, record: Record, old_values: dict[str, Any] | None = None) -> None:
        """Index a created record, or move the entries of an updated one.

        Args:
            record: The record in its new state
            old_values: Field values before the update (None on create)
        """
        for name, index in self._indexes.items():
            new_value = record.fields.get(name)
            if old_values is None:
                index.add(new_value, record.id)
                continue
            old_value = old_values.get(name)
            if old_value is None and new_value is None:
                continue
            if old_value is not None and new_value is not None and old_value == new_value:
                continue
            index.remove(old_value, record.id)
            index.add(new_value, record.id)

    def unindex(self, record: Record) -> None:
        """Remove every entry of a deleted record."""
        for name, index in self._indexes.items():
            index.remove(record.fields.get(name), record.id)

    def clear(self) -> None:
        for index in self._indexes.values():
            index.clear()
