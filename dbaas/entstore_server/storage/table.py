"""
In-memory table holding the records of one entity type.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..schema.types import EntityTypeDef, IdStrategy
from .idgen import IdGenerator, create_id_generator
from .index import IndexManager
from .record import Record


@dataclass
class EntityTable:
    """Records, insertion sequence, indexes and ID generator of one type.

    Attributes:
        definition: Entity type schema
        records: Stored records keyed by ID
        seq: Insertion sequence number per record ID (kept across updates)
        indexes: Secondary indexes
        id_generator: ID generator for the type's strategy
    """

    definition: EntityTypeDef
    records: dict[str, Record] = field(default_factory=dict)
    seq: dict[str, int] = field(default_factory=dict)
    indexes: IndexManager | None = None
    id_generator: IdGenerator | None = None
    _next_seq: int = 0

    def __post_init__(self) -> None:
        if self.indexes is None:
            self.indexes = IndexManager(self.definition)
        if self.id_generator is None:
            self.id_generator = create_id_generator(self.definition.id_strategy)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def numeric_ids(self) -> bool:
        return self.definition.id_strategy == IdStrategy.AUTO_INCREMENT

    def insert(self, record: Record) -> None:
        self.records[record.id] = record
        self.seq[record.id] = self._next_seq
        self._next_seq += 1
        self.indexes.reindex(record)

    def replace(self, record: Record) -> Record:
        old = self.records[record.id]
        self.records[record.id] = record
        self.indexes.reindex(record, old.fields)
        return old

    def remove(self, record_id: str) -> Record | None:
        record = self.records.pop(record_id, None)
        if record is None:
            return None
        self.seq.pop(record_id, None)
        self.indexes.unindex(record)
        return record

    def in_insertion_order(self, ids) -> list[str]:
        seq = self.seq
        return sorted(ids, key=seq.__getitem__)

    def __len__(self) -> int:
        return len(self.records)
